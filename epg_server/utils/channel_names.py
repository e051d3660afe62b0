"""
Channel name helpers

Default implementations of channel-name normalization and icon lookup. The
update job normalizes stored names with the same function, so requests and
rows meet on the same spelling.
"""
from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
import logging
import re
from urllib.parse import quote

from opencc import OpenCC


logger = logging.getLogger(__name__)

ICON_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".svg")
ICON_URL_PATH = "/data/icon/"

_SEPARATORS = re.compile(r"[\s\-_()\[\]（）【】]+")
# 4K and UHD are part of channel names (CCTV4K) and are kept
_QUALITY_SUFFIX = re.compile(r"(?:FHD|(?<!U)HD|高清|超清)$")


@lru_cache(maxsize=1)
def _t2s() -> OpenCC:
    return OpenCC("t2s")


def traditional_to_simplified(text: str) -> str:
    return _t2s().convert(text)


def clean_channel_name(
    name: str | None,
    t2s: bool = False,
    converter: Callable[[str], str] = traditional_to_simplified,
) -> str:
    """
    Normalize a requested channel name

    Args:
        name: Raw channel name from the request
        t2s: Apply the traditional-to-simplified converter first
        converter: Traditional-to-simplified conversion function

    Returns:
        Normalized name; empty string for empty input
    """
    if not name:
        return ""

    text = converter(name) if t2s else name
    text = _SEPARATORS.sub("", text).upper()
    stripped = _QUALITY_SUFFIX.sub("", text)
    return stripped or text


class IconResolver:
    """Looks channel icons up in the icon directory by file stem"""

    def __init__(self, icon_dir: Path, server_url: str):
        self.icon_dir = Path(icon_dir)
        self.server_url = server_url.rstrip("/")
        self._index: dict[str, str] = {}
        self._index_mtime: float | None = None

    def _load_index(self) -> dict[str, str]:
        try:
            mtime = self.icon_dir.stat().st_mtime
        except OSError:
            return {}

        if mtime != self._index_mtime:
            index: dict[str, str] = {}
            for path in sorted(self.icon_dir.iterdir()):
                if path.is_file() and path.suffix.lower() in ICON_EXTENSIONS:
                    index.setdefault(path.stem, path.name)
                    index.setdefault(clean_channel_name(path.stem), path.name)
            self._index = index
            self._index_mtime = mtime
            logger.debug("Indexed %s channel icons in %s", len(index), self.icon_dir)
        return self._index

    def match(self, channel_name: str | None) -> str | None:
        """Absolute icon URL for a channel, or None"""
        if not channel_name:
            return None
        index = self._load_index()
        filename = index.get(channel_name) or index.get(clean_channel_name(channel_name))
        if filename is None:
            return None
        return f"{self.server_url}{ICON_URL_PATH}{quote(filename)}"

    def resolve(self, cleaned_name: str, original_name: str) -> str | None:
        """Icon by cleaned name, falling back to the name as requested"""
        return self.match(cleaned_name) or self.match(original_name)
