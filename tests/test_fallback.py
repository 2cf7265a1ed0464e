"""Tests for the offline fallback chain."""

from __future__ import annotations

from typing import Optional

import httpx
import pytest
import pytest_asyncio

from reqcache.exceptions import StorageUnavailable
from reqcache.fallback import FallbackResolver, is_navigation, offline_response
from reqcache.models import CachedResponse, CacheSettings, RegistryState
from reqcache.storage import CacheStoreRegistry, request_identity

ORIGIN = "https://knower.life"
HTML = {"accept": "text/html"}


def _doc(body: str) -> CachedResponse:
    return CachedResponse(
        status_code=200, headers=[("content-type", "text/html")], body=body.encode()
    )


def _resolver(
    registry: CacheStoreRegistry,
    settings: CacheSettings,
    state: Optional[RegistryState],
) -> FallbackResolver:
    return FallbackResolver(registry, settings, lambda: state)


@pytest_asyncio.fixture
async def state(registry: CacheStoreRegistry, settings: CacheSettings) -> RegistryState:
    active = RegistryState.for_settings(settings)
    for name in active.store_names:
        await registry.open(name)
    return active


class TestIsNavigation:
    def test_html_get(self) -> None:
        assert is_navigation(httpx.Request("GET", f"{ORIGIN}/x", headers=HTML))

    def test_json_get(self) -> None:
        request = httpx.Request("GET", f"{ORIGIN}/x", headers={"accept": "application/json"})
        assert not is_navigation(request)

    def test_html_post(self) -> None:
        assert not is_navigation(httpx.Request("POST", f"{ORIGIN}/x", headers=HTML))


class TestOfflineResponse:
    def test_shape(self) -> None:
        response = offline_response(httpx.Request("GET", f"{ORIGIN}/x"))
        assert response.status_code == 503
        assert response.text == "Offline"
        assert response.headers["content-type"] == "text/plain; charset=utf-8"
        assert response.headers["x-reqcache-source"] == "fallback"


class TestResolve:
    @pytest.mark.asyncio
    async def test_offline_document_first(
        self, registry: CacheStoreRegistry, settings: CacheSettings, state: RegistryState
    ) -> None:
        await registry.put(state.static_store, request_identity("GET", f"{ORIGIN}/"), _doc("root"))
        await registry.put(
            state.static_store, request_identity("GET", f"{ORIGIN}/offline.html"), _doc("offline")
        )

        response = await _resolver(registry, settings, state).resolve(
            httpx.Request("GET", f"{ORIGIN}/deep/page", headers=HTML)
        )

        assert response.text == "offline"
        assert response.headers["x-reqcache-source"] == "fallback"

    @pytest.mark.asyncio
    async def test_root_document_second(
        self, registry: CacheStoreRegistry, settings: CacheSettings, state: RegistryState
    ) -> None:
        await registry.put(state.static_store, request_identity("GET", f"{ORIGIN}/"), _doc("root"))

        response = await _resolver(registry, settings, state).resolve(
            httpx.Request("GET", f"{ORIGIN}/deep/page", headers=HTML)
        )

        assert response.text == "root"

    @pytest.mark.asyncio
    async def test_document_from_dynamic_store(
        self, registry: CacheStoreRegistry, settings: CacheSettings, state: RegistryState
    ) -> None:
        await registry.put(state.dynamic_store, request_identity("GET", f"{ORIGIN}/"), _doc("root"))

        response = await _resolver(registry, settings, state).resolve(
            httpx.Request("GET", f"{ORIGIN}/deep/page", headers=HTML)
        )

        assert response.text == "root"

    @pytest.mark.asyncio
    async def test_synthetic_503_last(
        self, registry: CacheStoreRegistry, settings: CacheSettings, state: RegistryState
    ) -> None:
        response = await _resolver(registry, settings, state).resolve(
            httpx.Request("GET", f"{ORIGIN}/deep/page", headers=HTML)
        )
        assert response.status_code == 503
        assert response.text == "Offline"

    @pytest.mark.asyncio
    async def test_non_navigation_skips_documents(
        self, registry: CacheStoreRegistry, settings: CacheSettings, state: RegistryState
    ) -> None:
        await registry.put(
            state.static_store, request_identity("GET", f"{ORIGIN}/offline.html"), _doc("offline")
        )

        response = await _resolver(registry, settings, state).resolve(
            httpx.Request("GET", f"{ORIGIN}/api/chat", headers={"accept": "application/json"})
        )

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_unreadable_store_ends_in_503(
        self,
        registry: CacheStoreRegistry,
        settings: CacheSettings,
        state: RegistryState,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def broken(*args: object) -> None:
            raise StorageUnavailable("disk gone")

        monkeypatch.setattr(registry, "match_any", broken)

        response = await _resolver(registry, settings, state).resolve(
            httpx.Request("GET", f"{ORIGIN}/deep/page", headers=HTML)
        )

        assert response.status_code == 503
        assert response.text == "Offline"

    @pytest.mark.asyncio
    async def test_no_active_generation(
        self, registry: CacheStoreRegistry, settings: CacheSettings
    ) -> None:
        response = await _resolver(registry, settings, None).resolve(
            httpx.Request("GET", f"{ORIGIN}/x", headers=HTML)
        )
        assert response.status_code == 503

    def test_candidates_without_offline_document(
        self, registry: CacheStoreRegistry, settings: CacheSettings
    ) -> None:
        settings = settings.model_copy(update={"offline_document": None})
        assert _resolver(registry, settings, None).candidates() == [f"{ORIGIN}/"]

    def test_candidates_order(self, registry: CacheStoreRegistry, settings: CacheSettings) -> None:
        assert _resolver(registry, settings, None).candidates() == [
            f"{ORIGIN}/offline.html",
            f"{ORIGIN}/",
        ]
