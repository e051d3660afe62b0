"""
Admission Service

Decides whether a request may proceed. Three independent checks run in order
(token, User-Agent, IP list) and the first denial wins.

Values that match no allow-list entry are not denied outright: the configured
range selects which request class is let through by default (1 = non-live
requests, 2 = live playlist requests). This default-open fallback is the
long-standing access policy of the service and is kept on purpose.
"""
from collections.abc import Mapping, Sequence
from pathlib import Path
import logging

import aiofiles

from epg_server.config import CustomSettings
from epg_server.services.epg_types import AdmissionDecision, AdmissionRequest, DenyReason
from epg_server.utils.pattern_matcher import AllowEntry, matches


logger = logging.getLogger(__name__)

LIVE_TYPES = frozenset({"m3u", "txt"})

IP_WHITE_LIST = 1
IP_BLACK_LIST = 2
IP_LIST_FILES = {
    IP_WHITE_LIST: "ipWhiteList.txt",
    IP_BLACK_LIST: "ipBlackList.txt",
}


def is_live_request(output_type: str | None) -> bool:
    """Playlist (m3u/txt) requests are 'live' requests"""
    return (output_type or "") in LIVE_TYPES


def is_allowed(value: str, allow_list: Sequence[AllowEntry], range_mode: int, is_live: bool) -> bool:
    """
    Check a value against an allow-list, falling back to the range default

    Args:
        value: Token or User-Agent from the request
        allow_list: Compiled allow-list entries
        range_mode: 1 lets non-live requests through by default, 2 lets live ones
        is_live: Whether the request asks for a live playlist

    Returns:
        True when an entry matches or the range default admits the request
    """
    if matches(value, allow_list):
        return True
    return (range_mode == 2 and is_live) or (range_mode == 1 and not is_live)


def get_client_ip(headers: Mapping[str, str], remote_addr: str | None) -> str:
    """Client IP, preferring reverse-proxy headers over the socket address"""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    client_ip = headers.get("client-ip")
    if client_ip:
        return client_ip
    return remote_addr or "unknown"


async def load_ip_list(path: Path) -> set[str] | None:
    """
    Read an IP list file, one address per line

    Returns:
        Set of addresses, or None when the file does not exist
    """
    if not path.exists():
        return None
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        content = await f.read()
    return {line.strip() for line in content.splitlines() if line.strip()}


class AdmissionGate:
    """Token, User-Agent and IP admission checks"""

    def __init__(self, settings: CustomSettings):
        self.settings = settings

    async def decide(self, request: AdmissionRequest) -> AdmissionDecision:
        if not self._check_token(request):
            return AdmissionDecision.deny(DenyReason.BAD_TOKEN)

        if not self._check_user_agent(request):
            return AdmissionDecision.deny(DenyReason.BAD_IDENTITY)

        if not await self._check_ip(request):
            return AdmissionDecision.deny(DenyReason.IP_DENIED)

        return AdmissionDecision.allow()

    def _check_token(self, request: AdmissionRequest) -> bool:
        token_range = self.settings.token_range
        if token_range == 0:
            return True
        return is_allowed(request.token, self.settings.allowed_tokens, token_range, request.is_live)

    def _check_user_agent(self, request: AdmissionRequest) -> bool:
        user_agent_range = self.settings.user_agent_range
        if user_agent_range == 0:
            return True
        return is_allowed(
            request.user_agent,
            self.settings.allowed_user_agents,
            user_agent_range,
            request.is_live,
        )

    async def _check_ip(self, request: AdmissionRequest) -> bool:
        mode = self.settings.ip_list_mode
        if mode not in IP_LIST_FILES:
            return True

        path = Path(self.settings.data_dir) / IP_LIST_FILES[mode]
        try:
            ip_list = await load_ip_list(path)
        except OSError as exc:
            logger.warning("Could not read IP list %s: %s", path, exc)
            return True

        if ip_list is None:
            return True

        hit = request.client_ip in ip_list
        if mode == IP_WHITE_LIST:
            return hit
        return not hit
