"""HTTP transport for the phone-resident engine.

The phone exposes a small file server:

    POST /api/tus/<namespace>/<path>?override=true   body = raw file bytes
    GET  /api/raw/<namespace>                        zip of the whole namespace

Parent directories are created implicitly by the server.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from urllib.parse import quote

import httpx

from sbsrf_update.archive import extract_zip_async
from sbsrf_update.download import download_file
from sbsrf_update.errors import FilesystemError, NetworkError
from sbsrf_update.progress import Reporter, download_callback
from sbsrf_update.release import Asset
from sbsrf_update.transport.base import Transport

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "Rime"


class RemoteUploadTransport(Transport):
    """Uploads files one request at a time to ``http://<host>/api/tus/...``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        host: str,
        namespace: str = DEFAULT_NAMESPACE,
        workers: int = 4,
    ) -> None:
        self._client = client
        self.host = host
        self.namespace = namespace
        self.workers = workers

    def upload_url(self, relative: str) -> str:
        return f"http://{self.host}/api/tus/{self.namespace}/{quote(relative, safe='/')}?override=true"

    @property
    def snapshot_url(self) -> str:
        return f"http://{self.host}/api/raw/{self.namespace}"

    async def install(self, asset: Asset, reporter: Reporter | None = None) -> None:
        # Private scratch space: the shared cache belongs to local engines.
        reporter = self._reporter(reporter)
        scratch = Path(tempfile.mkdtemp(prefix="sbsrf-remote-"))
        try:
            archive = scratch / asset.name
            bar = reporter.bar(f"Download {asset.name}", unit="B")
            try:
                await download_file(self._client, asset.download_url, archive, download_callback(bar))
            finally:
                bar.close()

            extracted = scratch / "extracted"
            await extract_zip_async(archive, extracted, workers=self.workers)
            await self.push_tree(extracted, reporter)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
        logger.info("Installed %s on %s", asset.name, self.host)

    async def push_tree(self, source_dir: Path, reporter: Reporter | None = None) -> int:
        uploaded, failed = await self.upload_tree(source_dir, reporter)
        if failed:
            raise NetworkError(
                f"{len(failed)} file(s) failed to upload to {self.host}: {', '.join(failed[:5])}"
            )
        return uploaded

    async def upload_tree(
        self, source_dir: Path, reporter: Reporter | None = None
    ) -> tuple[int, list[str]]:
        """Upload every file under *source_dir*.

        Returns ``(uploaded_count, failed_relative_paths)``.

        A failed file is logged and skipped; the walk always completes.
        """
        source_dir = Path(source_dir)
        if not source_dir.is_dir():
            raise FilesystemError(f"Nothing to upload, {source_dir} is not a directory")
        files = sorted(p for p in source_dir.rglob("*") if p.is_file())
        bar = self._reporter(reporter).bar("Upload", total=len(files))
        failed: list[str] = []
        try:
            for path in files:
                relative = path.relative_to(source_dir).as_posix()
                bar.update(1, relative)
                if not await self._upload_one(path, relative):
                    failed.append(relative)
        finally:
            bar.close("done" if not failed else f"{len(failed)} failed")
        return len(files) - len(failed), failed

    async def fetch_snapshot(self, target: Path, reporter: Reporter | None = None) -> Path:
        """Download the remote namespace as one archive into *target*."""
        bar = self._reporter(reporter).bar("Backup", unit="B")
        try:
            return await download_file(self._client, self.snapshot_url, target, download_callback(bar))
        finally:
            bar.close()

    async def _upload_one(self, path: Path, relative: str) -> bool:
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.warning("Cannot read %s: %s", path, exc)
            return False
        try:
            response = await self._client.post(
                self.upload_url(relative),
                content=data,
                headers={"Content-Type": "application/octet-stream"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Upload of %s failed: %s", relative, exc)
            return False
        if not response.is_success:
            logger.warning("Upload of %s failed with status %d", relative, response.status_code)
            return False
        logger.debug("Uploaded %s", relative)
        return True
