"""Tests for settings and etcd peer parsing."""

import pytest
from pydantic import ValidationError

from dnsd.config import EtcdPeer, PeerConfigError, Settings, parse_peer, parse_peers

_ENV_NAMES = (
    "ETCD_PEERS",
    "ETCD_PORT_4001_TCP_ADDR",
    "ETCD_PORT_4001_TCP_PORT",
    "PUBLISH_DOMAIN",
    "TTL",
    "TTL_REFRESH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


class TestParsePeer:
    def test_strips_scheme_and_path(self):
        assert parse_peer("http://10.0.0.1:4001/v2/keys") == EtcdPeer(host="10.0.0.1", port=4001)

    def test_defaults_port(self):
        assert parse_peer("etcd.local") == EtcdPeer(host="etcd.local", port=4001)

    def test_rejects_https(self):
        with pytest.raises(PeerConfigError, match="SSL"):
            parse_peer("https://10.0.0.1:4001")

    def test_rejects_bad_port(self):
        with pytest.raises(PeerConfigError):
            parse_peer("10.0.0.1:abc")

    def test_url(self):
        assert EtcdPeer(host="10.0.0.1", port=2379).url == "http://10.0.0.1:2379"


class TestParsePeers:
    def test_splits_on_whitespace_and_commas(self):
        peers = parse_peers("http://10.0.0.1:4001 http://10.0.0.2:4002,10.0.0.3")
        assert peers == [
            EtcdPeer(host="10.0.0.1", port=4001),
            EtcdPeer(host="10.0.0.2", port=4002),
            EtcdPeer(host="10.0.0.3", port=4001),
        ]

    def test_falls_back_to_docker_link(self):
        peers = parse_peers("", fallback_host="172.17.0.2", fallback_port="4001")
        assert peers == [EtcdPeer(host="172.17.0.2", port=4001)]

    def test_defaults_to_localhost(self):
        assert parse_peers("") == [EtcdPeer(host="127.0.0.1", port=4001)]


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.domain == "docker"
        assert settings.ttl == 30
        assert settings.ttl_refresh == 15
        assert settings.etcd_retry_limit == 3
        assert settings.etcd_retry_delay_seconds == 1.0
        assert settings.server_port == 8080

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ETCD_PEERS", "http://10.1.0.1:4001 http://10.1.0.2:4001")
        monkeypatch.setenv("PUBLISH_DOMAIN", "cluster.")
        monkeypatch.setenv("TTL", "60")
        monkeypatch.setenv("TTL_REFRESH", "20")
        settings = Settings()
        assert settings.domain == "cluster"
        assert settings.ttl == 60
        assert settings.ttl_refresh == 20
        assert [str(peer) for peer in settings.peer_list()] == ["10.1.0.1:4001", "10.1.0.2:4001"]

    def test_docker_link_peer(self, monkeypatch):
        monkeypatch.setenv("ETCD_PORT_4001_TCP_ADDR", "172.17.0.5")
        monkeypatch.setenv("ETCD_PORT_4001_TCP_PORT", "4001")
        assert Settings().peer_list() == [EtcdPeer(host="172.17.0.5", port=4001)]

    def test_rejects_refresh_not_shorter_than_ttl(self):
        with pytest.raises(ValidationError, match="TTL_REFRESH"):
            Settings(ttl=15, ttl_refresh=15)

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValidationError, match="TTL"):
            Settings(ttl=0)

    def test_rejects_ssl_peers(self):
        with pytest.raises(ValidationError, match="SSL"):
            Settings(etcd_peers="https://10.0.0.1:4001")

    def test_rejects_empty_domain(self):
        with pytest.raises(ValidationError, match="PUBLISH_DOMAIN"):
            Settings(publish_domain=" . ")
