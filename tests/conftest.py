import io
import json
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer


def make_payload_zip(entries: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def write_manifest(root: Path, relative_dir: str, level_ids, name=None) -> Path:
    directory = root / relative_dir
    directory.mkdir(parents=True, exist_ok=True)
    content = {"levelIds": level_ids}
    if name is not None:
        content["name"] = name
    path = directory / "manifest.json"
    path.write_text(json.dumps(content), encoding="utf-8")
    return path


DEFAULT_PAYLOAD = make_payload_zip(
    {
        "maidata.txt": b"&title=test",
        "track.mp3": b"ID3",
        "pv.mp4": b"video",
    }
)


@dataclass
class FakeLevelApi:
    """Scripted behaviour and call records of the fake level service."""

    base_url: str = ""
    valid_code: str = "good"
    issued_key: str = "K-123456789"
    fail_link_ids: set[str] = field(default_factory=set)
    missing_url_ids: set[str] = field(default_factory=set)
    fail_download_ids: set[str] = field(default_factory=set)
    payloads: dict[str, bytes] = field(default_factory=dict)
    on_download: Optional[Callable[[str], None]] = None
    verify_requests: list[dict] = field(default_factory=list)
    link_requests: list[dict] = field(default_factory=list)
    download_requests: list[str] = field(default_factory=list)
    cookies: list[str] = field(default_factory=list)

    def link_calls(self, level_id: str) -> int:
        return sum(1 for r in self.link_requests if r["id"] == level_id)

    def download_calls(self, level_id: str) -> int:
        return self.download_requests.count(level_id)


def _build_app(api: FakeLevelApi) -> web.Application:
    async def verify_captcha(request: web.Request) -> web.Response:
        payload = await request.json()
        api.verify_requests.append(payload)
        api.cookies.append(request.cookies.get("connect.sid", ""))
        code = payload.get("code")
        if code == "boom":
            return web.json_response(
                {"success": False, "message": "server exploded"}, status=500
            )
        if code == "garbage":
            return web.Response(text="<html>bad gateway</html>", status=502)
        if code == "nokey":
            return web.json_response({"success": True})
        if code != api.valid_code:
            return web.json_response({"success": False, "message": "wrong code"})
        return web.json_response({"success": True, "key": api.issued_key})

    async def get_download_link(request: web.Request) -> web.Response:
        params = dict(request.query)
        api.link_requests.append(params)
        api.cookies.append(request.cookies.get("connect.sid", ""))
        level_id = params.get("id", "")
        if level_id in api.fail_link_ids:
            return web.json_response({"success": False, "message": "level not found"})
        if level_id in api.missing_url_ids:
            return web.json_response({"success": True})
        url = f"{request.url.origin()}/files/{level_id}"
        return web.json_response({"success": True, "url": url})

    async def download_file(request: web.Request) -> web.Response:
        level_id = request.match_info["level_id"]
        api.download_requests.append(level_id)
        if level_id in api.fail_download_ids:
            return web.Response(text="storage offline", status=503)
        if api.on_download is not None:
            api.on_download(level_id)
        return web.Response(body=api.payloads.get(level_id, DEFAULT_PAYLOAD))

    app = web.Application()
    app.router.add_post("/api/verify_captcha", verify_captcha)
    app.router.add_get("/api/get_download_link", get_download_link)
    app.router.add_get("/files/{level_id}", download_file)
    return app


@pytest.fixture
async def fake_api():
    api = FakeLevelApi()
    server = TestServer(_build_app(api))
    await server.start_server()
    api.base_url = str(server.make_url("/api"))
    try:
        yield api
    finally:
        await server.close()
