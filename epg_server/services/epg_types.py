"""
Shared types used across the admission and EPG response pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class Schema(str, Enum):
    """Output document shape, chosen by the query parameter the client used."""
    DIYP = "diyp"
    LOVETV = "lovetv"


class MatchTier(IntEnum):
    """Rank of a channel match; lower is better."""
    EXACT = 1
    PREFIX = 2
    SUBSTRING = 3


class DenyReason(str, Enum):
    NONE = "none"
    BAD_TOKEN = "bad-token"
    BAD_IDENTITY = "bad-identity"
    IP_DENIED = "ip-denied"


DENY_MESSAGES = {
    DenyReason.BAD_TOKEN: "访问被拒绝：无效Token。",
    DenyReason.BAD_IDENTITY: "访问被拒绝：无效UA。",
    DenyReason.IP_DENIED: "访问被拒绝：IP不允许。",
}


@dataclass(frozen=True, slots=True)
class AdmissionDecision:
    allowed: bool
    reason: DenyReason = DenyReason.NONE

    @property
    def message(self) -> str:
        return DENY_MESSAGES.get(self.reason, "")

    @classmethod
    def allow(cls) -> AdmissionDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason) -> AdmissionDecision:
        return cls(allowed=False, reason=reason)


@dataclass(frozen=True, slots=True)
class AdmissionRequest:
    """The request attributes the admission gate looks at."""
    token: str
    user_agent: str
    client_ip: str
    is_live: bool


@dataclass(slots=True)
class MatchCandidate:
    """A stored epg_data row selected by the channel resolver."""
    channel: str
    date: str
    payload: str
    tier: MatchTier

    @property
    def tie_break(self) -> int | None:
        """Ordering key within the tier: shortest prefix, longest substring."""
        if self.tier is MatchTier.EXACT:
            return None
        if self.tier is MatchTier.PREFIX:
            return len(self.channel)
        return -len(self.channel)


@dataclass(frozen=True, slots=True)
class RenderedDocument:
    """
    A serialized response body

    Only documents built from stored rows are cached. For lovetv the cached
    form is the stored document, since the live fields and the top-level key
    depend on the request.
    """
    body: str
    from_store: bool
    cache_body: str | None = None


__all__ = [
    "AdmissionDecision",
    "AdmissionRequest",
    "DenyReason",
    "MatchCandidate",
    "MatchTier",
    "RenderedDocument",
    "Schema",
]
