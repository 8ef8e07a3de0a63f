"""Service container wiring stores and caches from settings."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from .config import AppSettings

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

STORE = "store"
PAGE_CACHE = "page_cache"
SETTINGS = "settings"


class ServiceContainer:
    """Minimal dependency container with lazy singleton semantics."""

    def __init__(self) -> None:
        """Initialise container storage."""
        self._factories: dict[str, Callable[[ServiceContainer], Any]] = {}
        self._instances: dict[str, Any] = {}

    def register(self, key: str, factory: Callable[[ServiceContainer], T]) -> None:
        """Register a factory under a given key, replacing any cached instance."""
        self._factories[key] = factory
        self._instances.pop(key, None)

    def register_instance(self, key: str, instance: Any) -> None:
        """Register an already constructed service."""
        self._factories[key] = lambda _container: instance
        self._instances[key] = instance

    def resolve(self, key: str) -> Any:
        """Resolve a dependency by key, invoking its factory once."""
        if key in self._instances:
            return self._instances[key]
        if key not in self._factories:
            msg = f"Service '{key}' is not registered"
            raise KeyError(msg)
        instance = self._factories[key](self)
        self._instances[key] = instance
        return instance

    async def aclose(self) -> None:
        """Close resolved services exposing ``close`` and forget them."""
        for key, instance in list(self._instances.items()):
            closer = getattr(instance, "close", None)
            if closer is None:
                continue
            result = closer()
            if inspect.isawaitable(result):
                await result
            LOGGER.debug("Closed service %s", key)
        self._instances.clear()


def _build_store(container: ServiceContainer) -> Any:
    # Imported lazily: storage modules import core.
    settings: AppSettings = container.resolve(SETTINGS)
    if settings.store.backend == "postgrest":
        from ..storage.postgrest import PostgrestMessageStore

        return PostgrestMessageStore(settings.store)
    from ..storage.sqlite import SqliteMessageStore

    return SqliteMessageStore(settings.store)


def _build_page_cache(container: ServiceContainer) -> Any:
    from ..conversation.cache import PageCache

    settings: AppSettings = container.resolve(SETTINGS)
    return PageCache(ttl_seconds=settings.threads.cache_ttl_seconds)


def build_container(settings: AppSettings) -> ServiceContainer:
    """Return a container with the store and page cache registered."""
    container = ServiceContainer()
    container.register_instance(SETTINGS, settings)
    container.register(STORE, _build_store)
    container.register(PAGE_CACHE, _build_page_cache)
    return container


__all__ = ["PAGE_CACHE", "SETTINGS", "STORE", "ServiceContainer", "build_container"]
