"""Tests for the HTTP access gate."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tmuxgate.access.classifier import build_policy
from tmuxgate.access.gate import client_address, install_access_gate
from tmuxgate.config.settings import AccessConfig


def _request(host: str | None, forwarded: str | None = None) -> MagicMock:
    request = MagicMock()
    request.headers = {"x-forwarded-for": forwarded} if forwarded else {}
    request.client = MagicMock(host=host) if host is not None else None
    return request


def _gated_app(config: AccessConfig) -> FastAPI:
    app = FastAPI()
    install_access_gate(app, build_policy(config), config)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "healthy"}

    return app


class TestClientAddress:
    def test_peer_address(self) -> None:
        assert client_address(_request("10.1.2.3")) == "10.1.2.3"

    def test_forwarded_ignored_without_trust(self) -> None:
        assert client_address(_request("10.1.2.3", "8.8.8.8")) == "10.1.2.3"

    def test_first_forwarded_entry_when_trusted(self) -> None:
        request = _request("127.0.0.1", "192.168.1.50, 10.0.0.1")
        assert client_address(request, trust_proxy=True) == "192.168.1.50"

    def test_empty_forwarded_falls_back_to_peer(self) -> None:
        assert client_address(_request("10.1.2.3", " , 1.1.1.1"), trust_proxy=True) == "10.1.2.3"

    def test_ipv4_mapped_prefix_stripped(self) -> None:
        assert client_address(_request("::ffff:192.168.1.9")) == "192.168.1.9"

    def test_plain_ipv6_untouched(self) -> None:
        assert client_address(_request("::1")) == "::1"

    def test_no_peer(self) -> None:
        assert client_address(_request(None)) is None


class TestAccessGate:
    @pytest.fixture
    def client(self) -> TestClient:
        config = AccessConfig(allowed_ranges=["10.0.0.0/8", "localhost"], trust_proxy=True)
        return TestClient(_gated_app(config))

    def test_allowed_address_reaches_route(self, client: TestClient) -> None:
        resp = client.get("/health", headers={"X-Forwarded-For": "10.1.2.3"})
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}

    def test_denied_address_gets_403(self, client: TestClient) -> None:
        resp = client.get("/health", headers={"X-Forwarded-For": "8.8.8.8"})
        assert resp.status_code == 403
        assert resp.json() == {
            "success": False,
            "error": "Access denied. VPN connection required.",
            "message": "This service is only accessible through VPN.",
        }

    def test_unknown_routes_are_gated_too(self, client: TestClient) -> None:
        resp = client.get("/nope", headers={"X-Forwarded-For": "8.8.8.8"})
        assert resp.status_code == 403

    def test_non_ip_peer_denied(self, client: TestClient) -> None:
        # TestClient connects as host "testclient"
        assert client.get("/health").status_code == 403

    def test_forwarded_header_ignored_without_trust(self) -> None:
        config = AccessConfig(allowed_ranges=["10.0.0.0/8"])
        client = TestClient(_gated_app(config))
        resp = client.get("/health", headers={"X-Forwarded-For": "10.1.2.3"})
        assert resp.status_code == 403

    def test_decision_comes_from_is_allowed(self, client: TestClient) -> None:
        with patch("tmuxgate.access.gate.is_allowed", return_value=False) as allowed:
            resp = client.get("/health", headers={"X-Forwarded-For": "10.1.2.3"})
        assert resp.status_code == 403
        assert allowed.call_args.args[0] == "10.1.2.3"

    def test_disabled_gate_allows_everyone(self) -> None:
        client = TestClient(_gated_app(AccessConfig(enabled=False)))
        assert client.get("/health").status_code == 200

    def test_custom_messages(self) -> None:
        config = AccessConfig(
            allowed_ranges=[],
            messages={"access_denied": "Nope", "vpn_required": "Connect to the VPN first"},
        )
        resp = TestClient(_gated_app(config)).get("/health")
        assert resp.json()["error"] == "Nope"
        assert resp.json()["message"] == "Connect to the VPN first"

    def test_denials_logged(self, client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("INFO", logger="tmuxgate.access.gate"):
            client.get("/health", headers={"X-Forwarded-For": "8.8.8.8"})
        assert "Access attempt from IP: 8.8.8.8" in caplog.text
        assert "Access denied for IP: 8.8.8.8" in caplog.text

    def test_logging_switches(self, caplog: pytest.LogCaptureFixture) -> None:
        config = AccessConfig(
            allowed_ranges=[], log_access_attempts=False, log_denied_access=False,
        )
        with caplog.at_level("DEBUG", logger="tmuxgate.access.gate"):
            TestClient(_gated_app(config)).get("/health")
        assert [r for r in caplog.records if r.name == "tmuxgate.access.gate"] == []
