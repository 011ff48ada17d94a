"""Tests for client address resolution and identity providers."""

from types import SimpleNamespace

import pytest

from ratewarden.adapters.identity import request as request_identity
from ratewarden.adapters.identity.request import RequestIdentityProvider
from ratewarden.adapters.identity.static import StaticIdentityProvider
from ratewarden.services.client_ip import resolve_client_ip


class TestResolveClientIp:
    def test_cdn_header_wins(self) -> None:
        headers = {
            "CF-Connecting-IP": "203.0.113.1",
            "X-Forwarded-For": "203.0.113.2",
            "X-Real-IP": "203.0.113.3",
        }

        assert resolve_client_ip(headers, "10.0.0.1") == "203.0.113.1"

    def test_forwarded_for_takes_first_entry(self) -> None:
        headers = {"X-Forwarded-For": " 203.0.113.9 , 10.0.0.2, 10.0.0.3"}

        assert resolve_client_ip(headers, "10.0.0.1") == "203.0.113.9"

    def test_header_lookup_is_case_insensitive(self) -> None:
        assert resolve_client_ip({"x-real-ip": "198.51.100.4"}) == "198.51.100.4"

    def test_invalid_candidates_are_skipped(self) -> None:
        headers = {
            "CF-Connecting-IP": "not-an-ip",
            "X-Forwarded-For": "unknown, 203.0.113.5",
            "X-Real-IP": "198.51.100.6",
        }

        assert resolve_client_ip(headers, "10.0.0.1") == "198.51.100.6"

    def test_falls_back_to_remote_address(self) -> None:
        assert resolve_client_ip({"X-Real-IP": "999.1.1.1"}, "192.0.2.44") == "192.0.2.44"

    def test_ipv6_is_accepted(self) -> None:
        assert resolve_client_ip({"X-Forwarded-For": "2001:db8::1"}) == "2001:db8::1"

    @pytest.mark.parametrize(
        "headers, remote",
        [
            (None, None),
            ({}, None),
            ({"X-Forwarded-For": ""}, "testclient"),
        ],
    )
    def test_falls_back_to_loopback(self, headers, remote) -> None:
        assert resolve_client_ip(headers, remote) == "127.0.0.1"


class TestStaticIdentityProvider:
    def test_returns_configured_values(self) -> None:
        provider = StaticIdentityProvider(
            user_id=3,
            headers={"X-Real-IP": "192.0.2.1"},
            remote_address="10.0.0.1",
        )

        assert provider.current_user_id() == 3
        assert provider.client_headers() == {"X-Real-IP": "192.0.2.1"}
        assert provider.remote_address() == "10.0.0.1"

    def test_defaults_to_anonymous(self) -> None:
        provider = StaticIdentityProvider()

        assert provider.current_user_id() == 0
        assert provider.client_headers() is None
        assert provider.remote_address() is None

    def test_rejects_negative_user_id(self) -> None:
        with pytest.raises(ValueError):
            StaticIdentityProvider(user_id=-1)


class TestRequestIdentityProvider:
    def test_anonymous_outside_of_request(self) -> None:
        request_identity.clear_current_request()
        provider = RequestIdentityProvider()

        assert provider.current_user_id() == 0
        assert provider.client_headers() is None
        assert provider.remote_address() is None

    def test_reads_current_request(self) -> None:
        fake_request = SimpleNamespace(
            state=SimpleNamespace(user_id=42),
            headers={"X-Forwarded-For": "203.0.113.8"},
            client=SimpleNamespace(host="10.1.2.3"),
        )
        request_identity.set_current_request(fake_request)  # type: ignore[arg-type]
        try:
            provider = RequestIdentityProvider()

            assert provider.current_user_id() == 42
            assert provider.client_headers() == {"X-Forwarded-For": "203.0.113.8"}
            assert provider.remote_address() == "10.1.2.3"
        finally:
            request_identity.clear_current_request()

    @pytest.mark.parametrize("user_id", [None, "7", -2, True])
    def test_unusable_user_id_is_anonymous(self, user_id) -> None:
        fake_request = SimpleNamespace(
            state=SimpleNamespace(user_id=user_id),
            headers={},
            client=None,
        )
        request_identity.set_current_request(fake_request)  # type: ignore[arg-type]
        try:
            provider = RequestIdentityProvider()

            assert provider.current_user_id() == 0
            assert provider.remote_address() is None
        finally:
            request_identity.clear_current_request()
