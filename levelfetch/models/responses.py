"""
Response envelopes returned by the remote level API.
"""

from typing import Optional

from pydantic import BaseModel


class _Envelope(BaseModel):
    success: bool
    message: Optional[str] = None


class VerifyResponse(_Envelope):
    """Body of `POST /verify_captcha`."""

    key: Optional[str] = None


class LinkResponse(_Envelope):
    """Body of `GET /get_download_link`."""

    url: Optional[str] = None
