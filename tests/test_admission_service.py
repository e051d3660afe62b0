"""
Tests for the admission gate - token, User-Agent and IP list checks
"""
import pytest

from epg_server.services.admission_service import (
    AdmissionGate,
    get_client_ip,
    is_allowed,
    is_live_request,
)
from epg_server.services.epg_types import AdmissionRequest, DenyReason
from epg_server.utils.pattern_matcher import compile_allow_list

from conftest import make_settings


def make_request(token="", user_agent="", client_ip="10.0.0.1", is_live=False):
    return AdmissionRequest(token=token, user_agent=user_agent, client_ip=client_ip, is_live=is_live)


class TestIsAllowed:
    """Tests for the range-based default when no entry matches"""

    @pytest.mark.parametrize(
        "range_mode, is_live, expected",
        [
            (1, False, True),
            (1, True, False),
            (2, True, True),
            (2, False, False),
            (0, True, False),
            (0, False, False),
            (3, True, False),
            (3, False, False),
        ],
    )
    def test_default_outcome_for_unlisted_value(self, range_mode, is_live, expected):
        entries = compile_allow_list("secret")
        assert is_allowed("unknown", entries, range_mode, is_live) is expected

    @pytest.mark.parametrize("range_mode", [1, 2])
    @pytest.mark.parametrize("is_live", [True, False])
    def test_listed_value_always_allowed(self, range_mode, is_live):
        entries = compile_allow_list("secret\nregex:^vip-")
        assert is_allowed("secret", entries, range_mode, is_live)
        assert is_allowed("vip-42", entries, range_mode, is_live)


class TestIsLiveRequest:
    def test_playlist_types_are_live(self):
        assert is_live_request("m3u")
        assert is_live_request("txt")

    def test_other_types_are_not_live(self):
        assert not is_live_request("xml")
        assert not is_live_request("gz")
        assert not is_live_request(None)


class TestGetClientIp:
    """Tests for client IP extraction"""

    def test_forwarded_for_first_entry(self):
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.2", "client-ip": "198.51.100.1"}
        assert get_client_ip(headers, "127.0.0.1") == "203.0.113.7"

    def test_client_ip_header(self):
        assert get_client_ip({"client-ip": "198.51.100.1"}, "127.0.0.1") == "198.51.100.1"

    def test_connection_address(self):
        assert get_client_ip({}, "127.0.0.1") == "127.0.0.1"

    def test_unknown(self):
        assert get_client_ip({}, None) == "unknown"


class TestAdmissionGate:
    """Tests for AdmissionGate.decide"""

    @pytest.mark.asyncio
    async def test_all_checks_disabled(self, tmp_path):
        gate = AdmissionGate(make_settings(tmp_path))
        decision = await gate.decide(make_request(token="whatever"))
        assert decision.allowed
        assert decision.reason is DenyReason.NONE
        assert decision.message == ""

    @pytest.mark.asyncio
    async def test_bad_token_denied_for_live_request(self, tmp_path):
        gate = AdmissionGate(make_settings(tmp_path, token_range=1, token="secret"))
        decision = await gate.decide(make_request(token="wrong", is_live=True))
        assert not decision.allowed
        assert decision.reason is DenyReason.BAD_TOKEN
        assert "Token" in decision.message

    @pytest.mark.asyncio
    async def test_unlisted_token_default_allowed_for_epg_request(self, tmp_path):
        """Range 1 leaves EPG requests open even with an unknown token"""
        gate = AdmissionGate(make_settings(tmp_path, token_range=1, token="secret"))
        decision = await gate.decide(make_request(token="wrong", is_live=False))
        assert decision.allowed

    @pytest.mark.asyncio
    async def test_valid_token_allowed_for_live_request(self, tmp_path):
        gate = AdmissionGate(make_settings(tmp_path, token_range=1, token="a\nsecret"))
        decision = await gate.decide(make_request(token="secret", is_live=True))
        assert decision.allowed

    @pytest.mark.asyncio
    async def test_bad_user_agent(self, tmp_path):
        gate = AdmissionGate(
            make_settings(tmp_path, user_agent_range=2, user_agent="regex:/^okhttp/i")
        )
        denied = await gate.decide(make_request(user_agent="curl/8.0"))
        allowed = await gate.decide(make_request(user_agent="OkHttp/4.9"))
        assert denied.reason is DenyReason.BAD_IDENTITY
        assert allowed.allowed

    @pytest.mark.asyncio
    async def test_token_checked_before_user_agent(self, tmp_path):
        gate = AdmissionGate(
            make_settings(
                tmp_path,
                token_range=2,
                token="secret",
                user_agent_range=2,
                user_agent="player",
            )
        )
        decision = await gate.decide(make_request(token="bad", user_agent="bad"))
        assert decision.reason is DenyReason.BAD_TOKEN

    @pytest.mark.asyncio
    async def test_ip_white_list(self, tmp_path):
        (tmp_path / "ipWhiteList.txt").write_text("10.0.0.1\n\n 192.168.1.5 \n")
        gate = AdmissionGate(make_settings(tmp_path, ip_list_mode=1))

        assert (await gate.decide(make_request(client_ip="192.168.1.5"))).allowed
        denied = await gate.decide(make_request(client_ip="8.8.8.8"))
        assert denied.reason is DenyReason.IP_DENIED

    @pytest.mark.asyncio
    async def test_ip_black_list(self, tmp_path):
        (tmp_path / "ipBlackList.txt").write_text("8.8.8.8\n")
        gate = AdmissionGate(make_settings(tmp_path, ip_list_mode=2))

        assert (await gate.decide(make_request(client_ip="10.0.0.1"))).allowed
        denied = await gate.decide(make_request(client_ip="8.8.8.8"))
        assert denied.reason is DenyReason.IP_DENIED

    @pytest.mark.asyncio
    async def test_missing_ip_list_file_disables_check(self, tmp_path):
        gate = AdmissionGate(make_settings(tmp_path, ip_list_mode=1))
        assert (await gate.decide(make_request(client_ip="8.8.8.8"))).allowed
