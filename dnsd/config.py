from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ETCD_HOST = "127.0.0.1"
DEFAULT_ETCD_PORT = 4001
_PEER_SPLIT_RE = re.compile(r"[\s,]+")
_SCHEME_RE = re.compile(r"^(https?)://", re.IGNORECASE)


class PeerConfigError(ValueError):
    pass


@dataclass(frozen=True)
class EtcdPeer:
    host: str
    port: int = DEFAULT_ETCD_PORT

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def parse_peer(raw: str) -> EtcdPeer:
    value = raw.strip()
    scheme = _SCHEME_RE.match(value)
    if scheme:
        if scheme.group(1).lower() == "https":
            raise PeerConfigError(f"etcd SSL not currently supported: {raw}")
        value = value[scheme.end():]
    value = value.split("/", 1)[0]
    host, _, port = value.partition(":")
    if not host:
        raise PeerConfigError(f"etcd peer has no host: {raw!r}")
    if not port:
        return EtcdPeer(host=host)
    try:
        return EtcdPeer(host=host, port=int(port))
    except ValueError as exc:
        raise PeerConfigError(f"etcd peer has an invalid port: {raw!r}") from exc


def parse_peers(raw: str, *, fallback_host: str = "", fallback_port: str = "") -> list[EtcdPeer]:
    items = [item for item in _PEER_SPLIT_RE.split(raw.strip()) if item]
    if items:
        return [parse_peer(item) for item in items]
    if fallback_host.strip():
        port = fallback_port.strip()
        return [parse_peer(f"{fallback_host.strip()}:{port}" if port else fallback_host.strip())]
    return [EtcdPeer(host=DEFAULT_ETCD_HOST, port=DEFAULT_ETCD_PORT)]


class Settings(BaseSettings):
    app_name: str = Field(default="dnsd")
    app_env: str = Field(default="dev")
    app_version: str = Field(default="0.1.0")

    log_level: str = Field(default="INFO")
    log_file: str = Field(default="")

    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8080)
    metrics_enabled: bool = Field(default=True)

    etcd_peers: str = Field(default="")
    # docker link variables, used when ETCD_PEERS is unset
    etcd_port_4001_tcp_addr: str = Field(default="")
    etcd_port_4001_tcp_port: str = Field(default="")
    etcd_retry_limit: int = Field(default=3)
    etcd_retry_delay_seconds: float = Field(default=1.0)
    etcd_timeout_seconds: float = Field(default=5.0)

    publish_domain: str = Field(default="docker")
    ttl: int = Field(default=30)
    ttl_refresh: int = Field(default=15)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_publishing(self) -> "Settings":
        issues: list[str] = []
        if not self.publish_domain.strip().strip("."):
            issues.append("PUBLISH_DOMAIN must not be empty.")
        if self.ttl <= 0:
            issues.append("TTL must be a positive number of seconds.")
        if self.ttl_refresh <= 0:
            issues.append("TTL_REFRESH must be a positive number of seconds.")
        elif self.ttl_refresh >= self.ttl:
            issues.append("TTL_REFRESH must be shorter than TTL or records expire between refreshes.")
        if self.etcd_retry_limit < 0:
            issues.append("ETCD_RETRY_LIMIT must not be negative.")
        if self.etcd_retry_delay_seconds < 0:
            issues.append("ETCD_RETRY_DELAY_SECONDS must not be negative.")
        try:
            self.peer_list()
        except PeerConfigError as exc:
            issues.append(str(exc))
        if issues:
            raise ValueError(" ".join(issues))
        return self

    @property
    def domain(self) -> str:
        return self.publish_domain.strip().strip(".")

    def peer_list(self) -> list[EtcdPeer]:
        return parse_peers(
            self.etcd_peers,
            fallback_host=self.etcd_port_4001_tcp_addr,
            fallback_port=self.etcd_port_4001_tcp_port,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
