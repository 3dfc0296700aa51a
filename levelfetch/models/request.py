"""
Pydantic model for a download task request, as submitted by the front-end.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

RAW_PAYLOAD_EXT = "adx"


class AuthMode(str, Enum):
    """How the download key is obtained."""

    KEY = "key"
    CAPTCHA = "captcha"


class OutputFormat(str, Enum):
    """Container kind used for the saved payload file."""

    ZIP = "zip"
    ADX = "adx"


class TaskRequest(BaseModel):
    """An accepted download task. Immutable once validated."""

    selected_manifest_paths: list[str] = Field(default_factory=list)
    output_dir: str
    connect_sid: str = ""
    auth_mode: AuthMode = AuthMode.KEY
    key: Optional[str] = None
    captcha: Optional[str] = None
    download_no_bga: bool = True
    output_format: OutputFormat = OutputFormat.ADX
    auto_bundle: bool = False
    bundle_output_path: Optional[str] = None
    retries: int = Field(3, ge=1)
    request_interval_ms: int = Field(1000, ge=0)

    class Config:
        """Pydantic model configuration."""

        frozen = True
        alias_generator = to_camel
        populate_by_name = True
        str_strip_whitespace = True

    @field_validator("auth_mode", "output_format", mode="before")
    @classmethod
    def lowercase_choice(cls, v):
        """Accepts enum choices regardless of case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("retries", mode="before")
    @classmethod
    def default_retries(cls, v):
        """A missing retry count falls back to the default of 3."""
        return 3 if v is None else v

    @field_validator("request_interval_ms", mode="before")
    @classmethod
    def default_interval(cls, v):
        """A missing interval falls back to the default of 1000ms."""
        return 1000 if v is None else v

    @field_validator("bundle_output_path", "key", "captcha")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treats blank optional strings as absent."""
        return v if v else None

    @property
    def variant(self) -> str:
        """The `type` query value sent when resolving download links."""
        return "nobga" if self.download_no_bga else "bga"

    @property
    def payload_ext(self) -> str:
        """File extension used for saved payloads."""
        return "zip" if self.output_format is OutputFormat.ZIP else RAW_PAYLOAD_EXT
