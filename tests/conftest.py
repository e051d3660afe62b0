"""
Shared pytest fixtures for the EPG server tests.
"""
import json
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session

from epg_server.config import CustomSettings
from epg_server.models import Base, EpgData


TEST_DATE = "2024-10-01"
TEST_TZ = "Asia/Shanghai"
SERVER_URL = "http://epg.test"


def make_payload(channel_name: str, date: str = TEST_DATE, programs=None, **extra) -> str:
    """diyp document as written by the update job"""
    document = {
        "channel_name": channel_name,
        "date": date,
        "url": "https://example.com/live",
        "source": "tvmao",
        "epg_data": programs if programs is not None else [
            {"start": "07:00", "end": "08:00", "title": "朝闻天下", "desc": ""},
            {"start": "08:00", "end": "09:00", "title": "Drama", "desc": "Episode 1"},
        ],
    }
    document.update(extra)
    return json.dumps(document, ensure_ascii=False)


def make_settings(tmp_path: Path, **overrides) -> CustomSettings:
    values = {
        "data_dir": str(tmp_path),
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'epg.db'}",
        "server_url": SERVER_URL,
        "timezone": TEST_TZ,
        "token_range": 0,
        "user_agent_range": 0,
        "ip_list_mode": 0,
        "cache_backend": "none",
    }
    values.update(overrides)
    return CustomSettings(**values)


def seed_records(tmp_path: Path, records: list[tuple[str, str, str]]) -> None:
    """Write (channel, date, payload) rows with a synchronous engine"""
    engine = create_engine(f"sqlite:///{tmp_path / 'epg.db'}")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        for channel, date, payload in records:
            session.merge(EpgData(channel=channel, date=date, epg_diyp=payload))
        session.commit()
    engine.dispose()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def db_session(tmp_path):
    """Async session on a fresh SQLite file"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'resolver.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


async def add_records(session, records: list[tuple[str, str, str]]) -> None:
    for channel, date, payload in records:
        session.add(EpgData(channel=channel, date=date, epg_diyp=payload))
    await session.commit()
