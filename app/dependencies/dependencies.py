from typing import Optional
import logging
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.analysis.gemini import GeminiAnalyzer
from app.auth.jwt import get_user_id_from_token
from app.exceptions import UnauthenticatedException
from app.settings import Settings
from app.storage.dynamodb import DynamoDBService
from app.storage.s3 import S3Service

log = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

def get_settings(request: Request) -> Settings:
    """Dependency provider for the application Settings"""
    return request.app.state.settings

def get_s3_service(request: Request) -> S3Service:
    """Dependency provider for S3Service"""
    return request.app.state.s3

def get_dynamodb_service(request: Request) -> DynamoDBService:
    """Dependency provider for DynamoDBService"""
    return request.app.state.db

def get_analyzer(request: Request) -> GeminiAnalyzer:
    """Dependency provider for the image analyzer"""
    return request.app.state.analyzer

def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    config: Settings = Depends(get_settings),
) -> str:
    """Resolves the caller's user id from the bearer token, or fails with 401."""
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedException()
    try:
        return get_user_id_from_token(credentials.credentials, config)
    except JWTError as e:
        log.info("Rejected access token: %s", e)
        raise UnauthenticatedException()
