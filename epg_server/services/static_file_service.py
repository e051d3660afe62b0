"""
Static File Service

Locates the pre-generated XMLTV guide and live playlists written by the
generation job, and adapts playlist content to the public server URL.
"""
from dataclasses import dataclass
from hashlib import md5
from pathlib import Path
import logging
import re
from urllib.parse import quote_plus

import aiofiles

from epg_server.config import CustomSettings


logger = logging.getLogger(__name__)

_TVG_URL = re.compile(r'(#EXTM3U x-tvg-url=")(.*?)(")')


@dataclass(frozen=True, slots=True)
class GuideFile:
    path: Path
    filename: str
    media_type: str


def guide_file(settings: CustomSettings, output_type: str | None) -> GuideFile:
    """The XMLTV file for ``type=xml`` (default) or ``type=gz``"""
    if output_type == "gz":
        return GuideFile(Path(settings.data_dir) / "t.xml.gz", "t.xml.gz", "application/gzip")
    return GuideFile(Path(settings.data_dir) / "t.xml", "t.xml", "application/xml")


def playlist_path(settings: CustomSettings, output_type: str, source_url: str | None = None) -> Path:
    """
    Path of a generated playlist

    Without ``source_url`` this is the merged ``tv.m3u``/``tv.txt``; with it,
    the per-source file named after the md5 of the URL-encoded source URL.
    """
    if source_url:
        digest = md5(quote_plus(source_url).encode("utf-8")).hexdigest()
        return settings.live_dir / "file" / f"{digest}.{output_type}"
    return settings.live_dir / f"tv.{output_type}"


def rewrite_m3u(content: str, server_url: str) -> str:
    """Point the guide URL and relative logo paths at this server"""
    base = server_url.rstrip("/")
    content = _TVG_URL.sub(lambda m: f"{m.group(1)}{base}/t.xml.gz{m.group(3)}", content, count=1)
    return content.replace('tvg-logo="/data/icon/', f'tvg-logo="{base}/data/icon/')


async def read_playlist(
    settings: CustomSettings,
    output_type: str,
    source_url: str | None = None,
) -> str | None:
    """
    Read a generated playlist, adapted for this server

    Returns:
        Playlist text, or None when the file has not been generated
    """
    path = playlist_path(settings, output_type, source_url)
    if not path.is_file():
        logger.info(f"Playlist not found: {path}")
        return None

    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        content = await f.read()

    if output_type == "m3u":
        content = rewrite_m3u(content, settings.server_url)
    return content
