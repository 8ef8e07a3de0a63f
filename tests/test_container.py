"""Tests for service container wiring."""

from __future__ import annotations

from pathlib import Path

import pytest

from support_threads.conversation.cache import PageCache
from support_threads.core import AppSettings, ServiceContainer, build_container
from support_threads.core.config import StoreSettings, ThreadSettings
from support_threads.core.container import PAGE_CACHE, SETTINGS, STORE
from support_threads.storage import PostgrestMessageStore, SqliteMessageStore


def test_resolve_creates_singletons() -> None:
    container = ServiceContainer()
    created: list[object] = []

    def factory(_container: ServiceContainer) -> object:
        instance = object()
        created.append(instance)
        return instance

    container.register("thing", factory)

    assert container.resolve("thing") is container.resolve("thing")
    assert len(created) == 1


def test_unknown_service_raises() -> None:
    with pytest.raises(KeyError):
        ServiceContainer().resolve("missing")


@pytest.mark.asyncio
async def test_build_container_selects_sqlite_store(tmp_path: Path) -> None:
    settings = AppSettings(
        store=StoreSettings(db_path=tmp_path / "c.db"),
        threads=ThreadSettings(cache_ttl_seconds=30),
    )
    container = build_container(settings)

    store = container.resolve(STORE)

    assert isinstance(store, SqliteMessageStore)
    assert isinstance(container.resolve(PAGE_CACHE), PageCache)
    assert container.resolve(SETTINGS) is settings
    await container.aclose()


@pytest.mark.asyncio
async def test_build_container_selects_postgrest_store() -> None:
    settings = AppSettings(
        store=StoreSettings(backend="postgrest", base_url="https://db.example.co")
    )
    container = build_container(settings)

    assert isinstance(container.resolve(STORE), PostgrestMessageStore)
    await container.aclose()
