"""
Tests for the response cache backends and the read-through query service
"""
import base64
from datetime import datetime
import json
from zoneinfo import ZoneInfo

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from epg_server.services.epg_query_service import EPGQueryService
from epg_server.services.epg_types import MatchCandidate, MatchTier, Schema
from epg_server.services.response_cache import (
    MemoryResponseCache,
    NullResponseCache,
    RedisResponseCache,
    create_response_cache,
    make_cache_key,
    rewrite_icon_host,
)
from epg_server.services.response_synthesizer import ResponseSynthesizer
from epg_server.utils.channel_names import IconResolver

from conftest import TEST_DATE, TEST_TZ, make_payload, make_settings


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeRedis:
    """Minimal async stand-in for redis.asyncio.Redis"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.data: dict[str, str] = {}
        self.expiry: dict[str, int] = {}

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        self.expiry[key] = ex

    async def scan_iter(self, match=None):
        self._check()
        prefix = match.rstrip("*")
        for key in list(self.data):
            if key.startswith(prefix):
                yield key

    async def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)

    async def aclose(self):
        pass


class StubResolver:
    def __init__(self, candidate: MatchCandidate | None):
        self.candidate = candidate
        self.calls = 0

    async def resolve(self, date, channel_name):
        self.calls += 1
        return self.candidate


class TestCacheKey:
    def test_key_is_base64_of_fields(self):
        key = make_cache_key(TEST_DATE, "CCTV1", Schema.DIYP)
        assert base64.b64decode(key).decode("utf-8") == f"{TEST_DATE}_CCTV1_diyp"

    def test_key_differs_per_schema(self):
        assert make_cache_key(TEST_DATE, "CCTV1", Schema.DIYP) != make_cache_key(TEST_DATE, "CCTV1", Schema.LOVETV)


class TestRewriteIconHost:
    def test_absolute_url_rewritten(self):
        body = '{\n    "url": "https://example.com/live",\n    "icon": "http://old:8080/data/icon/CCTV1.png"\n}'
        result = rewrite_icon_host(body, "https://epg.example.org/")
        assert '"icon": "https://epg.example.org/data/icon/CCTV1.png"' in result
        assert '"url": "https://example.com/live"' in result
        json.loads(result)

    def test_relative_path_rewritten(self):
        result = rewrite_icon_host('{"icon":"/data/icon/a.png"}', "http://h")
        assert result == '{"icon":"http://h/data/icon/a.png"}'

    def test_null_icon_untouched(self):
        body = '{"icon":null}'
        assert rewrite_icon_host(body, "http://h") == body


class TestMemoryResponseCache:
    """Tests for MemoryResponseCache"""

    @pytest.mark.asyncio
    async def test_put_then_get(self):
        cache = MemoryResponseCache(clock=FakeClock())
        await cache.put("k", "document", ttl=60)
        assert await cache.get("k") == "document"

    @pytest.mark.asyncio
    async def test_expired_entry_misses(self):
        clock = FakeClock()
        cache = MemoryResponseCache(clock=clock)
        await cache.put("k", "document", ttl=60)

        clock.now += 60
        assert await cache.get("k") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_sweep_drops_only_expired(self):
        clock = FakeClock()
        cache = MemoryResponseCache(clock=clock)
        await cache.put("short", "a", ttl=10)
        await cache.put("long", "b", ttl=100)

        clock.now += 50
        assert cache.sweep() == 1
        assert await cache.get("long") == "b"

    @pytest.mark.asyncio
    async def test_clear(self):
        cache = MemoryResponseCache()
        await cache.put("k", "v", ttl=60)
        await cache.clear()
        assert await cache.get("k") is None


class TestNullResponseCache:
    @pytest.mark.asyncio
    async def test_always_misses(self):
        cache = NullResponseCache()
        await cache.put("k", "v", ttl=60)
        assert await cache.get("k") is None


class TestRedisResponseCache:
    """Tests for RedisResponseCache with an in-memory client"""

    @pytest.mark.asyncio
    async def test_put_then_get_with_ttl(self):
        client = FakeRedis()
        cache = RedisResponseCache(client)
        await cache.put("k", "document", ttl=86400)

        assert await cache.get("k") == "document"
        assert client.expiry["epg:k"] == 86400

    @pytest.mark.asyncio
    async def test_unavailable_backend_degrades_to_miss(self):
        cache = RedisResponseCache(FakeRedis(fail=True))
        await cache.put("k", "document", ttl=60)
        assert await cache.get("k") is None
        await cache.clear()

    @pytest.mark.asyncio
    async def test_clear_only_touches_own_keys(self):
        client = FakeRedis()
        client.data["other"] = "x"
        cache = RedisResponseCache(client)
        await cache.put("k", "document", ttl=60)

        await cache.clear()

        assert client.data == {"other": "x"}


class TestCreateResponseCache:
    def test_backends(self, tmp_path):
        assert isinstance(create_response_cache(make_settings(tmp_path)), NullResponseCache)
        assert isinstance(
            create_response_cache(make_settings(tmp_path, cache_backend="memory")),
            MemoryResponseCache,
        )
        assert isinstance(
            create_response_cache(make_settings(tmp_path, cache_backend="redis")),
            RedisResponseCache,
        )


class TestEPGQueryService:
    """Tests for the cache -> resolver -> synthesizer pipeline"""

    def build(self, tmp_path, candidate, cache, server_url="http://epg.test", clock=None):
        settings = make_settings(tmp_path, server_url=server_url)
        icon_dir = settings.icon_dir
        icon_dir.mkdir(exist_ok=True)
        (icon_dir / "CCTV1.png").write_bytes(b"png")
        resolver = StubResolver(candidate)
        service = EPGQueryService(
            settings=settings,
            resolver=resolver,
            synthesizer=ResponseSynthesizer(settings, IconResolver(icon_dir, settings.server_url), clock=clock),
            cache=cache,
        )
        return service, resolver

    @pytest.mark.asyncio
    async def test_matched_document_cached(self, tmp_path):
        cache = MemoryResponseCache()
        matched = MatchCandidate("CCTV1", TEST_DATE, make_payload("CCTV1"), MatchTier.EXACT)
        service, resolver = self.build(tmp_path, matched, cache)

        first = await service.get_document(TEST_DATE, "CCTV1", "CCTV1", Schema.DIYP)
        second = await service.get_document(TEST_DATE, "CCTV1", "CCTV1", Schema.DIYP)

        assert first == second
        assert resolver.calls == 1
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_cache_hit_uses_current_server_url(self, tmp_path):
        cache = MemoryResponseCache()
        matched = MatchCandidate("CCTV1", TEST_DATE, make_payload("CCTV1"), MatchTier.EXACT)
        writer, _ = self.build(tmp_path, matched, cache, server_url="http://old.host")
        reader, resolver = self.build(tmp_path, matched, cache, server_url="https://new.host")

        await writer.get_document(TEST_DATE, "CCTV1", "CCTV1", Schema.DIYP)
        body = await reader.get_document(TEST_DATE, "CCTV1", "CCTV1", Schema.DIYP)

        assert resolver.calls == 0
        assert json.loads(body)["icon"] == "https://new.host/data/icon/CCTV1.png"

    @pytest.mark.asyncio
    async def test_placeholder_not_cached(self, tmp_path):
        cache = MemoryResponseCache()
        service, resolver = self.build(tmp_path, None, cache)

        await service.get_document(TEST_DATE, "Nope", "NOPE", Schema.LOVETV)
        await service.get_document(TEST_DATE, "Nope", "NOPE", Schema.LOVETV)

        assert resolver.calls == 2
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_lovetv_live_program_follows_the_clock(self, tmp_path):
        now = {"value": datetime(2024, 10, 1, 7, 30, tzinfo=ZoneInfo(TEST_TZ))}
        cache = MemoryResponseCache()
        matched = MatchCandidate("CCTV1", TEST_DATE, make_payload("CCTV1"), MatchTier.EXACT)
        service, resolver = self.build(tmp_path, matched, cache, clock=lambda: now["value"])

        morning = json.loads(await service.get_document(TEST_DATE, "CCTV1", "CCTV1", Schema.LOVETV))
        now["value"] = datetime(2024, 10, 1, 8, 30, tzinfo=ZoneInfo(TEST_TZ))
        later = json.loads(await service.get_document(TEST_DATE, "CCTV1", "CCTV1", Schema.LOVETV))

        assert resolver.calls == 1
        assert morning["CCTV1"]["isLive"] == "朝闻天下"
        assert later["CCTV1"]["isLive"] == "Drama"
        assert later["CCTV1"]["liveSt"] == int(now["value"].replace(minute=0).timestamp())
        assert later["CCTV1"]["program"] == morning["CCTV1"]["program"]

    @pytest.mark.asyncio
    async def test_lovetv_cache_hit_keyed_by_requested_name(self, tmp_path):
        cache = MemoryResponseCache()
        matched = MatchCandidate("CCTV1", TEST_DATE, make_payload("CCTV1"), MatchTier.EXACT)
        service, resolver = self.build(tmp_path, matched, cache)

        first = json.loads(await service.get_document(TEST_DATE, "CCTV-1", "CCTV1", Schema.LOVETV))
        second = json.loads(await service.get_document(TEST_DATE, "cctv1", "CCTV1", Schema.LOVETV))

        assert resolver.calls == 1
        assert list(first) == ["CCTV-1"]
        assert list(second) == ["cctv1"]
        assert second["cctv1"] == first["CCTV-1"]
