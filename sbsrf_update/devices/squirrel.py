"""Squirrel, the macOS engine."""

from __future__ import annotations

import asyncio
import io
import logging
import tempfile
import zipfile
from pathlib import Path

from sbsrf_update.config import DeviceConfig
from sbsrf_update.devices.local import LocalDevice
from sbsrf_update.errors import FilesystemError
from sbsrf_update.release import Release
from sbsrf_update.settings import Settings
from sbsrf_update.transport import LocalCopyTransport

logger = logging.getLogger(__name__)

APP_PATH = Path("/Library/Input Methods/Squirrel.app")
EXECUTABLE = APP_PATH / "Contents/MacOS/Squirrel"


class SquirrelDevice(LocalDevice):
    engine = "Squirrel"

    @classmethod
    def default_config(cls, settings: Settings, name: str) -> DeviceConfig:
        return DeviceConfig(
            name=cls.engine,
            work_dir=settings.device_dir(name),
            live_dir=Path.home() / "Library/Rime",
            executable_path=EXECUTABLE,
        )

    @classmethod
    def detect(cls) -> bool:
        return APP_PATH.exists()

    async def deploy(self) -> None:
        exe = self.config.executable_path
        if exe is None:
            return
        await self._run(str(exe), "--reload")
        logger.info("Squirrel reloaded")

    async def install_engine(self, release: Release) -> bool:
        """Fetch the ``squirrel*`` asset and open the ``.pkg`` it contains."""
        asset = release.find(self.engine.lower())
        if asset is None:
            logger.warning("Release %s has no Squirrel installer", release.version)
            return False
        if not isinstance(self.transport, LocalCopyTransport):
            return False
        archive = await self.transport.fetch(asset, self.reporter)
        pkg = await asyncio.to_thread(extract_installer, archive, Path(tempfile.mkdtemp()))
        if pkg is None:
            logger.warning("No .pkg found in %s", asset.name)
            return False
        await self._run("open", str(pkg))
        return True


def extract_installer(archive: Path, dest: Path) -> Path | None:
    """Find ``Squirrel*.zip`` inside *archive* and write its ``.pkg`` into *dest*."""
    try:
        with zipfile.ZipFile(archive) as outer:
            for info in outer.infolist():
                if not info.filename.startswith("Squirrel"):
                    continue
                with zipfile.ZipFile(io.BytesIO(outer.read(info))) as inner:
                    for entry in inner.infolist():
                        if not entry.filename.endswith(".pkg"):
                            continue
                        target = dest / Path(entry.filename).name
                        target.write_bytes(inner.read(entry))
                        return target
                return None
    except (OSError, zipfile.BadZipFile) as exc:
        raise FilesystemError(f"Cannot unpack installer from {archive}: {exc}") from exc
    return None
