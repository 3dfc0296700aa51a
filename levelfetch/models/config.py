"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator

from .request import AuthMode, OutputFormat

DEFAULT_API_BASE = "https://api.milkbot.cn/server/api"


class AppSettings(BaseModel):
    """User defaults used to fill in task requests."""

    # Authentication & API
    connect_sid: str = ""
    auth_mode: AuthMode = AuthMode.KEY
    key: str = ""
    api_base: str = DEFAULT_API_BASE

    # Download Settings
    output_dir: str = "downloads"
    download_no_bga: bool = True
    output_format: OutputFormat = OutputFormat.ADX
    retries: int = 3
    request_interval_ms: int = 1000

    # Bundling
    auto_bundle: bool = False

    # Collections
    collections_dir: str = ""

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("auth_mode", "output_format", mode="before")
    @classmethod
    def lowercase_choice(cls, v):
        """Accepts enum choices regardless of case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        """Ensures a reasonable number of attempts."""
        if v < 1 or v > 20:
            raise ValueError("Retries must be between 1 and 20.")
        return v

    @field_validator("request_interval_ms")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        """Ensures the interval is not negative."""
        if v < 0:
            raise ValueError("Request interval cannot be negative.")
        return v

    @field_validator("api_base")
    @classmethod
    def validate_api_base(cls, v: str) -> str:
        """Validates the API base URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("API base must be an http(s) URL.")
        return v.rstrip("/")

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
