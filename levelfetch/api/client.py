"""
Async client for the remote level API: captcha verification, download link
lookup, and payload streaming.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Type, TypeVar

import aiohttp
from pydantic import BaseModel, ValidationError

from levelfetch.exceptions import (
    AuthenticationError,
    LevelFetchError,
    LinkError,
    ProtocolError,
)
from levelfetch.media.downloader import stream_to_file
from levelfetch.models.config import DEFAULT_API_BASE
from levelfetch.models.responses import LinkResponse, VerifyResponse
from levelfetch.utils.formatting import truncate_for_log

log = logging.getLogger(__name__)

EnvelopeT = TypeVar("EnvelopeT", bound=BaseModel)

PARSE_BODY_LIMIT = 300
HTTP_BODY_LIMIT = 200


class LevelAPIClient:
    """
    Async client for the level download service.

    One instance is bound to one session credential (the `connect.sid`
    cookie) and owns an aiohttp session used for both the JSON lookups and
    the payload downloads.
    """

    def __init__(
        self,
        connect_sid: str,
        base_url: str = DEFAULT_API_BASE,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ):
        """
        Initializes the API client.

        Args:
            connect_sid: The session credential sent as the `connect.sid` cookie.
            base_url: Base URL that the endpoint paths are appended to.
            timeout: Overrides the default aiohttp timeout.
        """
        self.connect_sid = connect_sid
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout or aiohttp.ClientTimeout(
            total=None, sock_connect=15, sock_read=90
        )
        self._session: Optional[aiohttp.ClientSession] = None

    async def open(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=4, ttl_dns_cache=300, enable_cleanup_closed=True
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=self._timeout,
                headers={"Accept-Encoding": "gzip, deflate"},
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "LevelAPIClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            raise LevelFetchError("HTTP session is not open.")
        return self._session

    def _cookie_header(self) -> dict[str, str]:
        return {"Cookie": f"connect.sid={self.connect_sid}"}

    @staticmethod
    def _parse_envelope(
        model: Type[EnvelopeT], status: int, body: str, operation: str
    ) -> EnvelopeT:
        try:
            return model.model_validate_json(body)
        except ValidationError as e:
            raise ValueError(
                f"{operation} parse failed (status={status}, "
                f"body={truncate_for_log(body, PARSE_BODY_LIMIT)})"
            ) from e

    async def exchange_code_for_key(self, code: str) -> str:
        """
        Exchanges a human-entered captcha code for a download key.

        Raises:
            AuthenticationError: On transport errors, non-2xx responses, an
            unparseable body, or a `success: false` reply.
            ProtocolError: If the reply claims success but carries no key.
        """
        operation = "verify_captcha"
        try:
            async with self.session.post(
                f"{self.base_url}/verify_captcha",
                json={"code": code},
                headers=self._cookie_header(),
            ) as r:
                status = r.status
                body = await r.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AuthenticationError(f"{operation} request failed: {e}") from e

        try:
            data = self._parse_envelope(VerifyResponse, status, body, operation)
        except ValueError as e:
            raise AuthenticationError(str(e)) from e

        if not 200 <= status < 300:
            detail = data.message or truncate_for_log(body, HTTP_BODY_LIMIT)
            raise AuthenticationError(f"{operation} http {status}: {detail}")
        if not data.success:
            raise AuthenticationError(
                f"{operation} failed: {data.message or 'unknown'}"
            )
        if not data.key:
            raise ProtocolError(f"{operation} success but key is empty")
        return data.key

    async def resolve_download_url(self, key: str, level_id: str, variant: str) -> str:
        """
        Resolves the download URL of one level payload.

        Raises:
            LinkError: On transport errors, non-2xx responses, an unparseable
            body, or a `success: false` reply.
            ProtocolError: If the reply claims success but carries no URL.
        """
        operation = "get_download_link"
        try:
            async with self.session.get(
                f"{self.base_url}/get_download_link",
                params={"id": level_id, "key": key, "type": variant},
                headers=self._cookie_header(),
            ) as r:
                status = r.status
                body = await r.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise LinkError(level_id, f"{operation} request failed: {e}") from e

        try:
            data = self._parse_envelope(LinkResponse, status, body, operation)
        except ValueError as e:
            raise LinkError(level_id, str(e)) from e

        if not 200 <= status < 300:
            detail = data.message or truncate_for_log(body, HTTP_BODY_LIMIT)
            raise LinkError(
                level_id, f"{operation} http {status} for {level_id}: {detail}"
            )
        if not data.success:
            raise LinkError(
                level_id,
                f"{operation} failed for {level_id}: {data.message or 'unknown'}",
            )
        if not data.url:
            raise ProtocolError(f"{operation} success but url is empty")
        return data.url

    async def download(self, url: str, destination: Path) -> int:
        """Streams a payload to `destination`. Not retried here."""
        return await stream_to_file(self.session, url, destination)
