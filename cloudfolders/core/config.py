"""Cloud storage integration settings."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class CloudStorageSettings(BaseSettings):
    """Environment-supplied configuration for the cloud storage providers."""

    # General Settings
    log_level: str = Field(default="INFO", description="Root log level")
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout applied to every HTTP request made by an adapter"
    )

    # Dropbox
    dropbox_enabled: bool = Field(default=True)
    dropbox_client_id: str = Field(default="")
    dropbox_client_secret: str = Field(default="")
    dropbox_requests_per_minute: Optional[int] = Field(default=600)

    # Google Drive
    google_drive_enabled: bool = Field(default=True)
    google_drive_client_id: str = Field(default="")
    google_drive_client_secret: str = Field(default="")
    google_drive_requests_per_minute: Optional[int] = Field(default=1000)

    # Box
    box_enabled: bool = Field(default=True)
    box_client_id: str = Field(default="")
    box_client_secret: str = Field(default="")
    box_requests_per_minute: Optional[int] = Field(default=1000)

    # OneDrive (Microsoft Graph)
    onedrive_enabled: bool = Field(default=True)
    onedrive_client_id: str = Field(default="")
    onedrive_client_secret: str = Field(default="")
    onedrive_requests_per_minute: Optional[int] = Field(
        default=600,
        description="Per-instance budget; Graph throttles per app and per user"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache
def get_settings() -> CloudStorageSettings:
    """Load settings once per process."""
    return CloudStorageSettings()
