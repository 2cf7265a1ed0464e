"""Tests for the network fetcher and the event scheduler's routing."""

from __future__ import annotations

import httpx
import pytest

from reqcache.exceptions import InvalidUsageError, NetworkFailure
from reqcache.models import CacheSettings
from reqcache.network import NetworkFetcher


class TestNetworkFetcher:
    @pytest.mark.asyncio
    async def test_returns_any_status(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(418, text="teapot"))
        async with NetworkFetcher(transport=transport) as fetcher:
            response = await fetcher.get("https://knower.life/brew")
        assert response.status_code == 418
        assert response.text == "teapot"

    @pytest.mark.asyncio
    async def test_forwards_method_headers_and_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201)

        async with NetworkFetcher(transport=httpx.MockTransport(handler)) as fetcher:
            await fetcher.fetch(
                httpx.Request(
                    "PUT",
                    "https://knower.life/api/chat/1",
                    headers={"x-trace": "abc"},
                    content=b"payload",
                )
            )

        assert seen[0].method == "PUT"
        assert seen[0].headers["x-trace"] == "abc"
        assert seen[0].content == b"payload"

    @pytest.mark.asyncio
    async def test_connection_error_is_network_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with NetworkFetcher(transport=httpx.MockTransport(handler)) as fetcher:
            with pytest.raises(NetworkFailure, match="refused"):
                await fetcher.get("https://knower.life/")

    @pytest.mark.asyncio
    async def test_timeout_is_network_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        async with NetworkFetcher(timeout=0.1, transport=httpx.MockTransport(handler)) as fetcher:
            with pytest.raises(NetworkFailure):
                await fetcher.get("https://knower.life/")

    @pytest.mark.asyncio
    async def test_follows_redirects(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": "/new"})
            return httpx.Response(200, text=request.url.path)

        async with NetworkFetcher(transport=httpx.MockTransport(handler)) as fetcher:
            response = await fetcher.get("https://knower.life/old")
        assert response.text == "/new"

    @pytest.mark.asyncio
    async def test_redirect_loop_is_network_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"location": request.url.path})

        async with NetworkFetcher(transport=httpx.MockTransport(handler)) as fetcher:
            with pytest.raises(NetworkFailure):
                await fetcher.get("https://knower.life/loop")


class TestScheduler:
    @pytest.mark.asyncio
    async def test_unknown_event_rejected(self, make_layer, settings: CacheSettings) -> None:
        layer = make_layer(settings)
        with pytest.raises(InvalidUsageError, match="Unknown event"):
            await layer.scheduler.dispatch("install")  # type: ignore[arg-type]
