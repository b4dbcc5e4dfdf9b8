"""Tests for the phone upload transport and the Hamster device."""

from __future__ import annotations

import httpx
import pytest

from sbsrf_update.config import DeviceConfig
from sbsrf_update.devices import HamsterDevice, create_device
from sbsrf_update.errors import NetworkError, RemoteHostRequiredError
from sbsrf_update.release import Asset
from sbsrf_update.transport import RemoteUploadTransport

from conftest import zip_bytes

HOST = "192.168.1.108"


class FakePhone:
    """Records uploads and serves a namespace snapshot."""

    def __init__(self, fail=(), snapshot=b"", assets=None):
        self.fail = set(fail)
        self.snapshot = snapshot
        self.assets = assets or {}
        self.uploads: dict[str, bytes] = {}
        self.params: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and path.startswith("/api/tus/Rime/"):
            relative = path[len("/api/tus/Rime/"):]
            if relative in self.fail:
                return httpx.Response(500)
            self.uploads[relative] = request.content
            self.params.append(request.url.params.get("override"))
            return httpx.Response(204)
        if request.method == "GET" and path == "/api/raw/Rime":
            return httpx.Response(200, content=self.snapshot)
        if path in self.assets:
            return httpx.Response(200, content=self.assets[path])
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def tree(tmp_path):
    d = tmp_path / "tree"
    (d / "lua").mkdir(parents=True)
    (d / "sbsrf.schema.yaml").write_text("schema")
    (d / "lua" / "sbsrf.lua").write_text("lua")
    (d / "bad.txt").write_text("nope")
    return d


class TestRemoteUploadTransport:
    def test_upload_url_quotes_path(self):
        transport = RemoteUploadTransport(httpx.AsyncClient(), HOST)
        assert (
            transport.upload_url("opencc/声笔 a.txt")
            == f"http://{HOST}/api/tus/Rime/opencc/%E5%A3%B0%E7%AC%94%20a.txt?override=true"
        )
        assert transport.snapshot_url == f"http://{HOST}/api/raw/Rime"

    async def test_upload_tree_sends_every_file(self, tree):
        phone = FakePhone()
        async with phone.client() as client:
            uploaded, failed = await RemoteUploadTransport(client, HOST).upload_tree(tree)
        assert (uploaded, failed) == (3, [])
        assert phone.uploads["lua/sbsrf.lua"] == b"lua"
        assert set(phone.params) == {"true"}

    async def test_failed_file_does_not_stop_walk(self, tree):
        phone = FakePhone(fail={"bad.txt"})
        async with phone.client() as client:
            transport = RemoteUploadTransport(client, HOST)
            uploaded, failed = await transport.upload_tree(tree)
        assert failed == ["bad.txt"]
        assert uploaded == 2
        assert set(phone.uploads) == {"sbsrf.schema.yaml", "lua/sbsrf.lua"}

    async def test_push_tree_raises_after_partial_failure(self, tree):
        phone = FakePhone(fail={"bad.txt"})
        async with phone.client() as client:
            with pytest.raises(NetworkError, match="bad.txt"):
                await RemoteUploadTransport(client, HOST).push_tree(tree)
        assert len(phone.uploads) == 2

    async def test_install_downloads_and_uploads(self):
        phone = FakePhone(assets={"/hamster.zip": zip_bytes({"hamster.yaml": "h", "a/b.txt": "b"})})
        async with phone.client() as client:
            await RemoteUploadTransport(client, HOST).install(
                Asset("hamster.zip", "https://dl.test/hamster.zip")
            )
        assert phone.uploads == {"a/b.txt": b"b", "hamster.yaml": b"h"}

    async def test_fetch_snapshot(self, tmp_path):
        phone = FakePhone(snapshot=b"PKsnapshot")
        async with phone.client() as client:
            path = await RemoteUploadTransport(client, HOST).fetch_snapshot(tmp_path / "Rime.zip")
        assert path.read_bytes() == b"PKsnapshot"


class TestHamsterDevice:
    def _config(self, settings, **kw):
        return DeviceConfig(name="Hamster", work_dir=settings.device_dir("iphone"), **kw)

    def test_host_required(self, settings):
        with pytest.raises(RemoteHostRequiredError, match="--host"):
            create_device(self._config(settings), settings, httpx.AsyncClient())

    async def test_backup_stores_archive(self, settings):
        phone = FakePhone(snapshot=zip_bytes({"Rime/user.yaml": "u"}))
        config = self._config(settings, version="v1")
        async with phone.client() as client:
            device = create_device(config, settings, client, host=HOST)
            path = await device.backup()
        assert isinstance(device, HamsterDevice)
        assert (path / "Rime.zip").exists()
        assert device.backups.list() == ["v1"]

    async def test_restore_uploads_namespace_contents(self, settings):
        config = self._config(settings, version="v2")
        backup = config.backup_root / "v1"
        backup.mkdir(parents=True)
        (backup / "Rime.zip").write_bytes(
            zip_bytes({"Rime/user.yaml": "old", "Rime/build/x.bin": "bin"})
        )
        phone = FakePhone()
        async with phone.client() as client:
            device = create_device(config, settings, client, host=HOST)
            count = await device.restore("v1")
        assert count == 2
        assert phone.uploads == {"user.yaml": b"old", "build/x.bin": b"bin"}
