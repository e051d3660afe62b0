"""
EPG Query Service

Answers diyp/lovetv requests: cache lookup, channel resolution, synthesis
and cache write-back.
"""
import logging

from epg_server.config import CustomSettings
from epg_server.services.channel_resolver import ChannelResolver
from epg_server.services.epg_types import Schema
from epg_server.services.response_cache import ResponseCache, make_cache_key, rewrite_icon_host
from epg_server.services.response_synthesizer import ResponseSynthesizer

logger = logging.getLogger(__name__)


class EPGQueryService:
    """Read-through pipeline for one channel on one date"""

    def __init__(
        self,
        settings: CustomSettings,
        resolver: ChannelResolver,
        synthesizer: ResponseSynthesizer,
        cache: ResponseCache,
    ):
        self.settings = settings
        self.resolver = resolver
        self.synthesizer = synthesizer
        self.cache = cache

    async def get_document(
        self,
        date: str,
        ori_channel_name: str,
        clean_channel_name: str,
        schema: Schema,
    ) -> str:
        """
        Get the rendered EPG document for a channel

        Args:
            date: ISO calendar date
            ori_channel_name: Channel name as requested
            clean_channel_name: Normalized channel name
            schema: Output document shape

        Returns:
            JSON body; placeholder data when no record matches
        """
        cache_key = make_cache_key(date, clean_channel_name, schema)

        cached = await self.cache.get(cache_key)
        if cached:
            logger.debug(f"Cache hit for {clean_channel_name!r} on {date} ({schema.value})")
            cached = rewrite_icon_host(cached, self.settings.server_url)
            return self.synthesizer.render_cached(cached, ori_channel_name, date, schema)

        matched = await self.resolver.resolve(date, clean_channel_name)
        rendered = self.synthesizer.synthesize(
            matched, ori_channel_name, clean_channel_name, date, schema
        )

        if rendered.from_store:
            await self.cache.put(cache_key, rendered.cache_body, self.settings.cache_ttl_sec)
        else:
            logger.info(f"No EPG data for {ori_channel_name!r} on {date}, returned placeholder")

        return rendered.body
