from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal, Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    aws_region: str = Field("us-east-1")
    aws_endpoint_url: Optional[str] = Field(None)
    aws_access_key_id: str = Field("test")
    aws_secret_access_key: str = Field("test")

    s3_bucket: str = Field("images")
    # Base used for public object URLs, e.g. a CDN in front of the bucket
    public_base_url: Optional[str] = Field(None)

    images_table: str = Field("images")
    metadata_table: str = Field("image_metadata")

    # Supabase signs access tokens with the project JWT secret
    supabase_jwt_secret: str = Field("change-me")
    jwt_algorithm: str = Field("HS256")
    jwt_audience: str = Field("authenticated")

    gemini_api_key: Optional[str] = Field(None)
    gemini_model: str = Field("gemini-2.0-flash")
    analysis_timeout_seconds: float = Field(30.0)

    search_mode: Literal["application", "pushdown"] = Field("application")
    search_case_sensitive_elements: bool = Field(False)
    default_page_limit: int = Field(20)
    max_page_limit: int = Field(100)

    log_level: str = Field("INFO")
    app_title: str = Field("Image Search Service")

settings = Settings()
