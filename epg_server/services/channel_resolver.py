"""
Channel Resolver

Finds the stored schedule that best matches a (possibly imprecise) channel
name on a given date. Channel naming differs between sources, so a single
ranked query tries three tiers:

1. exact:      stored name equals the query
2. prefix:     stored name starts with the query, shortest first
3. substring:  stored name is contained in the query, longest first
"""
import logging

from sqlalchemy import case, func, literal, null, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from epg_server.models import EpgData
from epg_server.services.epg_types import MatchCandidate, MatchTier

logger = logging.getLogger(__name__)


def build_match_query(date: str, channel_name: str):
    """
    Build the ranked single-row query for a channel on a date

    Concatenation goes through SQLAlchemy so it renders as ``||`` on SQLite
    and ``CONCAT()`` on MySQL.
    """
    query_name = literal(channel_name)
    like_channel = f"{channel_name}%"

    is_exact = EpgData.channel == channel_name
    is_prefix = EpgData.channel.like(like_channel)
    is_substring = query_name.like(literal("%").concat(EpgData.channel).concat("%"))

    tier = case(
        (is_exact, int(MatchTier.EXACT)),
        (is_prefix, int(MatchTier.PREFIX)),
        else_=int(MatchTier.SUBSTRING),
    )
    tie_break = case(
        (is_exact, null()),
        (is_prefix, func.length(EpgData.channel)),
        else_=-func.length(EpgData.channel),
    )

    return (
        select(EpgData.channel, EpgData.date, EpgData.epg_diyp, tier.label("tier"))
        .where(
            EpgData.date == date,
            or_(is_exact, is_prefix, is_substring),
        )
        .order_by(tier, tie_break)
        .limit(1)
    )


class ChannelResolver:
    """Resolves cleaned channel names against the epg_data table"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, date: str, channel_name: str) -> MatchCandidate | None:
        """
        Return the best matching record for the date, or None

        Args:
            date: ISO calendar date
            channel_name: Cleaned channel name

        Returns:
            MatchCandidate, or None when nothing matches or the store fails
        """
        if not channel_name:
            return None

        stmt = build_match_query(date, channel_name)
        try:
            result = await self.db.execute(stmt)
            row = result.first()
        except SQLAlchemyError as e:
            logger.error(f"EPG lookup failed for {channel_name!r} on {date}: {e}")
            return None

        if row is None:
            logger.debug(f"No EPG record for {channel_name!r} on {date}")
            return None

        candidate = MatchCandidate(
            channel=row.channel,
            date=row.date,
            payload=row.epg_diyp,
            tier=MatchTier(row.tier),
        )
        logger.debug(
            f"Resolved {channel_name!r} on {date} to {candidate.channel!r} "
            f"({candidate.tier.name.lower()} match)"
        )
        return candidate
