"""JWT access token verification for Supabase-issued sessions."""

from typing import Any, Dict

from jose import jwt, JWTError

from app.settings import Settings, settings


def verify_access_token(token: str, config: Settings = settings) -> Dict[str, Any]:
    """Verify a Supabase access token signed with the project JWT secret.

    Verification checks:
    - signature matches ``supabase_jwt_secret``
    - token is not expired (exp claim)
    - audience is ``jwt_audience`` (Supabase uses 'authenticated')

    Returns:
        dict: Decoded claims

    Raises:
        JWTError: If the token is invalid, expired, or has no subject
    """
    try:
        decoded = jwt.decode(
            token,
            config.supabase_jwt_secret,
            algorithms=[config.jwt_algorithm],
            audience=config.jwt_audience,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_aud": True,
            },
        )
    except JWTError as e:
        raise JWTError(f"JWT verification failed: {str(e)}")

    if not decoded.get("sub"):
        raise JWTError("JWT verification failed: missing subject")
    return decoded


def get_user_id_from_token(token: str, config: Settings = settings) -> str:
    """Return the user id carried in the token's 'sub' claim."""
    return verify_access_token(token, config)["sub"]
