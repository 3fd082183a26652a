from __future__ import annotations

SKYDNS_ROOT = "/skydns/"


def skydns_path(hostname: str) -> str:
    """Map ``master.docker`` to ``/skydns/docker/master``."""
    return SKYDNS_ROOT + "/".join(reversed(hostname.split(".")))


def hostname_from_path(key: str) -> str:
    if not key.startswith(SKYDNS_ROOT):
        raise ValueError(f"key is outside {SKYDNS_ROOT}: {key}")
    return ".".join(reversed(key[len(SKYDNS_ROOT):].split("/")))


def short_name(hostname: str) -> str:
    return hostname.split(".", 1)[0]
