"""
Response Synthesizer

Turns a matched epg_data row into a diyp or lovetv document, or builds a
placeholder schedule when nothing matched. Field order is part of the output
contract for downstream players and is preserved.

lovetv placeholder slots are stamped on the requested date, and the 23:00
slot ends at midnight of the following day, so the 24 slots are contiguous.
"""
from collections.abc import Callable
from datetime import datetime
import json
import logging
from typing import Any

from epg_server.config import DEFAULT_PROJECT_URL, CustomSettings
from epg_server.schemas import (
    DiypDocument,
    DiypProgram,
    LovetvChannel,
    LovetvPlaceholderProgram,
    LovetvProgram,
)
from epg_server.services.epg_types import MatchCandidate, RenderedDocument, Schema
from epg_server.utils.channel_names import IconResolver
from epg_server.utils.timezone import format_duration, local_timestamp, now_in


logger = logging.getLogger(__name__)

PLACEHOLDER_TITLE = "精彩节目"
PROVENANCE_FIELD = "source"


def dump_json(document: Any, *, pretty: bool = False) -> str:
    """Serialize with unescaped slashes and non-ASCII text"""
    if pretty:
        return json.dumps(document, ensure_ascii=False, indent=4)
    return json.dumps(document, ensure_ascii=False, separators=(",", ":"))


def insert_icon_after_url(document: dict[str, Any], icon: str | None) -> dict[str, Any]:
    """
    Copy a stored document with ``icon`` placed right after ``url``

    The stored ``source`` field is dropped. Documents without ``url`` get the
    icon appended.
    """
    result: dict[str, Any] = {}
    for key, value in document.items():
        if key in (PROVENANCE_FIELD, "icon"):
            continue
        result[key] = value
        if key == "url":
            result["icon"] = icon
    if "icon" not in result:
        result["icon"] = icon
    return result


def find_current_program(programs: list[LovetvProgram], now_ts: int) -> LovetvProgram | None:
    """First program whose [st, et] interval contains now, both ends inclusive"""
    for program in programs:
        if program.st <= now_ts <= program.et:
            return program
    return None


class ResponseSynthesizer:
    """Builds diyp/lovetv response bodies"""

    def __init__(
        self,
        settings: CustomSettings,
        icon_resolver: IconResolver,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = settings
        self.icon_resolver = icon_resolver
        self._clock = clock or (lambda: now_in(settings.timezone))

    def synthesize(
        self,
        matched: MatchCandidate | None,
        ori_channel_name: str,
        clean_channel_name: str,
        date: str,
        schema: Schema,
    ) -> RenderedDocument:
        """
        Render the response body for a channel and date

        Args:
            matched: Row chosen by the channel resolver, if any
            ori_channel_name: Channel name as requested
            clean_channel_name: Normalized channel name
            date: Requested ISO date
            schema: Output document shape

        Returns:
            RenderedDocument; from_store is False for placeholder documents
        """
        icon = self.icon_resolver.resolve(clean_channel_name, ori_channel_name)

        if matched is not None:
            try:
                stored = self._stored_document(matched, icon)
                body = self._render_stored(stored, ori_channel_name, matched.date, schema)
                return RenderedDocument(
                    body=body,
                    from_store=True,
                    cache_body=dump_json(stored, pretty=True),
                )
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(
                    f"Malformed EPG record {matched.channel!r} on {matched.date}, "
                    f"using placeholder data: {e}"
                )

        body = self._render_placeholder(clean_channel_name, date, icon, schema)
        return RenderedDocument(body=body, from_store=False)

    def render_cached(self, cached: str, ori_channel_name: str, date: str, schema: Schema) -> str:
        """
        Render a response from a cached stored document

        The lovetv live program is computed against the current time and the
        channel is keyed by the name of this request.
        """
        if schema is Schema.DIYP:
            return cached
        return self._render_stored(json.loads(cached), ori_channel_name, date, schema)

    @staticmethod
    def _stored_document(matched: MatchCandidate, icon: str | None) -> dict[str, Any]:
        stored = json.loads(matched.payload)
        if not isinstance(stored, dict):
            raise TypeError(f"expected a JSON object, got {type(stored).__name__}")
        return insert_icon_after_url(stored, icon)

    def _render_stored(
        self,
        document: dict[str, Any],
        ori_channel_name: str,
        date: str,
        schema: Schema,
    ) -> str:
        if schema is Schema.DIYP:
            return dump_json(document, pretty=True)

        return dump_json(
            {ori_channel_name: self._to_lovetv(document, date)},
            pretty=True,
        )

    def _to_lovetv(self, document: dict[str, Any], fallback_date: str) -> dict[str, Any]:
        day = document.get("date") or fallback_date
        tz_name = self.settings.timezone

        programs = []
        for entry in document["epg_data"]:
            start_ts = local_timestamp(day, entry["start"], tz_name)
            end_ts = local_timestamp(day, entry["end"], tz_name)
            duration = end_ts - start_ts
            programs.append(
                LovetvProgram(
                    st=start_ts,
                    et=end_ts,
                    t=entry["title"],
                    showTime=format_duration(duration),
                    duration=duration,
                )
            )

        now = self._clock()
        current = None
        if day == now.date().isoformat():
            current = find_current_program(programs, int(now.timestamp()))

        channel = LovetvChannel(
            isLive=current.t if current else "",
            liveSt=current.st if current else 0,
            channelName=document["channel_name"],
            lvUrl=document["url"],
            icon=document["icon"],
            program=programs,
        )
        return channel.model_dump()

    def _render_placeholder(
        self,
        clean_channel_name: str,
        date: str,
        icon: str | None,
        schema: Schema,
    ) -> str:
        enabled = self.settings.ret_default

        if schema is Schema.DIYP:
            document = DiypDocument(
                channel_name=clean_channel_name,
                date=date,
                url=DEFAULT_PROJECT_URL,
                icon=icon,
                epg_data=self._placeholder_diyp_programs() if enabled else "",
            )
            return dump_json(document.model_dump())

        channel = LovetvChannel(
            channelName=clean_channel_name,
            lvUrl=DEFAULT_PROJECT_URL,
            icon=icon,
            program=self._placeholder_lovetv_programs(date) if enabled else "",
        )
        return dump_json({clean_channel_name: channel.model_dump()})

    @staticmethod
    def _placeholder_diyp_programs() -> list[DiypProgram]:
        return [
            DiypProgram(
                start=f"{hour:02d}:00",
                end=f"{(hour + 1) % 24:02d}:00",
                title=PLACEHOLDER_TITLE,
            )
            for hour in range(24)
        ]

    def _placeholder_lovetv_programs(self, date: str) -> list[LovetvPlaceholderProgram]:
        tz_name = self.settings.timezone
        return [
            LovetvPlaceholderProgram(
                st=local_timestamp(date, f"{hour:02d}:00", tz_name),
                # The last slot ends at midnight of the following day
                et=local_timestamp(date, f"{hour + 1:02d}:00", tz_name),
                t=PLACEHOLDER_TITLE,
            )
            for hour in range(24)
        ]
