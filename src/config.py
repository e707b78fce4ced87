from pathlib import Path
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Load environment variables from .env and system environment
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Server settings
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=3002, validation_alias="PORT")

    # Debug mode
    debug: bool = Field(default=False, validation_alias="DEBUG")

    # MCP server identity
    server_name: str = Field(
        default="web-content-extractor", validation_alias="SERVER_NAME"
    )
    server_version: str = Field(default="1.0.0", validation_alias="SERVER_VERSION")

    # Transport endpoints
    sse_path: str = Field(default="/sse", validation_alias="SSE_PATH")
    message_path: str = Field(default="/messages", validation_alias="MESSAGE_PATH")

    # Page fetching
    fetch_timeout_seconds: float = Field(
        default=10.0, gt=0, validation_alias="FETCH_TIMEOUT_SECONDS"
    )
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; MCPContentBot/1.0)",
        validation_alias="USER_AGENT",
    )

    # Logging
    log_file: Optional[Path] = Field(default=None, validation_alias="LOG_FILE")

    # Logfire settings
    logfire_enabled: bool = Field(default=False, validation_alias="LOGFIRE_ENABLED")
    logfire_token: Optional[str] = Field(default=None, validation_alias="LOGFIRE_TOKEN")
    logfire_service_name: str = Field(
        default="web-content-extractor", validation_alias="LOGFIRE_SERVICE_NAME"
    )

    def get_fetch_headers(self) -> Dict[str, str]:
        """Return the headers sent with every page fetch."""
        return {"User-Agent": self.user_agent}


def get_settings() -> Settings:
    """Instantiate and return the Settings object."""
    return Settings()
