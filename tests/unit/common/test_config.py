import importlib

from scheduling.common import config


def reload_config(monkeypatch, **env):
    for name in ("STORAGE_BACKEND", "AVAILABILITY_CACHE_TTL_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    for name, value in env.items():
        monkeypatch.setenv(name, value)
    return importlib.reload(config)


def test_availability_cache_ttl_defaults(monkeypatch):
    try:
        assert reload_config(monkeypatch).AVAILABILITY_CACHE_TTL_SECONDS == 60
        dynamodb = reload_config(monkeypatch, STORAGE_BACKEND="dynamodb")
        assert dynamodb.AVAILABILITY_CACHE_TTL_SECONDS == 0
        explicit = reload_config(
            monkeypatch,
            STORAGE_BACKEND="dynamodb",
            AVAILABILITY_CACHE_TTL_SECONDS="5",
        )
        assert explicit.AVAILABILITY_CACHE_TTL_SECONDS == 5
    finally:
        monkeypatch.undo()
        importlib.reload(config)
