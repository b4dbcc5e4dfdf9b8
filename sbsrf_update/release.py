"""Release metadata client.

Fetches the latest tagged release from Gitee (default) or GitHub and
normalises it into a :class:`Release`. Any transport or decoding failure is
raised as a single :class:`~sbsrf_update.errors.NetworkError`; a failed
release fetch is fatal to the whole command.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from sbsrf_update.errors import NetworkError

logger = logging.getLogger(__name__)

GITEE_LATEST_URL = "https://gitee.com/sbxlm/sbxlm/releases/latest"
GITEE_BASE_URL = "https://gitee.com"
GITHUB_LATEST_URL = "https://api.github.com/repos/sbsrf/home/releases/latest"

_HTML_BREAKS = re.compile(r"</?p>|<br\s*/?>")


@dataclass(frozen=True)
class Asset:
    name: str
    download_url: str


@dataclass
class Release:
    version: str
    changelog: str = ""
    assets: list[Asset] = field(default_factory=list)

    def find(self, prefix: str) -> Asset | None:
        """Return the first asset whose name starts with *prefix*."""
        for asset in self.assets:
            if asset.name.startswith(prefix):
                return asset
        return None


class ReleaseSource:
    """Base class for release hosting back-ends."""

    url: str = ""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch_latest(self) -> Release:
        payload = await self._get_json(self.url, headers=self._headers())
        try:
            release = self.parse(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise NetworkError(f"Unexpected release payload from {self.url}: {exc}") from exc
        logger.info("Latest release %s with %d assets", release.version, len(release.assets))
        return release

    def parse(self, payload: dict[str, Any]) -> Release:
        raise NotImplementedError

    def _headers(self) -> dict[str, str]:
        return {}

    async def _get_json(self, url: str, headers: dict[str, str]) -> Any:
        try:
            response = await self._client.get(url, headers=headers, follow_redirects=True)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(
                f"Release fetch failed: {url} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Cannot reach {url}: {exc}") from exc
        except ValueError as exc:
            raise NetworkError(f"Release response from {url} is not JSON: {exc}") from exc


class GiteeReleaseSource(ReleaseSource):
    """``gitee.com/<owner>/<repo>/releases/latest``; asset URLs are site-relative."""

    url = GITEE_LATEST_URL

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def parse(self, payload: dict[str, Any]) -> Release:
        base = payload["release"]
        detail = base["release"]
        description = _HTML_BREAKS.sub("", detail.get("description") or "")
        changelog = "{title}\n\n{created}\n\n{description}".format(
            title=detail.get("title", ""),
            created=detail.get("created_at", ""),
            description=description,
        )
        assets = [
            Asset(item["name"], _absolute(item["download_url"]))
            for item in detail.get("attach_files", [])
        ]
        return Release(version=base["tag"]["name"], changelog=changelog, assets=assets)


class GitHubReleaseSource(ReleaseSource):
    """GitHub REST ``releases/latest``."""

    url = GITHUB_LATEST_URL

    def _headers(self) -> dict[str, str]:
        return {
            "User-Agent": "Sbsrf-Update-App",
            "Accept": "application/vnd.github+json",
        }

    def parse(self, payload: dict[str, Any]) -> Release:
        assets = [
            Asset(item["name"], item["browser_download_url"])
            for item in payload.get("assets", [])
        ]
        return Release(
            version=payload["tag_name"],
            changelog=payload.get("body") or "",
            assets=assets,
        )


_SOURCES: dict[str, type[ReleaseSource]] = {
    "gitee": GiteeReleaseSource,
    "github": GitHubReleaseSource,
}


def get_release_source(name: str, client: httpx.AsyncClient) -> ReleaseSource:
    cls = _SOURCES.get(name.lower())
    if cls is None:
        raise ValueError(f"Unknown release source '{name}'. Choose from: {list(_SOURCES)}")
    return cls(client)


def _absolute(url: str) -> str:
    if url.startswith(("http://", "https://")):
        return url
    return f"{GITEE_BASE_URL}{url}"
