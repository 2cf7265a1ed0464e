"""Shared test fixtures for reqcache.

Provides an isolated config environment, a scriptable fake origin served
through :class:`httpx.MockTransport`, ready-made settings, and a factory
for fully wired :class:`~reqcache.layer.CacheLayer` instances. These
fixtures are automatically discovered by pytest and available to all test
modules without explicit imports.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Callable, Iterator

import httpx
import pytest
import pytest_asyncio

from reqcache.layer import CacheLayer
from reqcache.models import CacheSettings
from reqcache.notifications import ConsoleHost
from reqcache.output import reset_output
from reqcache.storage import CacheStoreRegistry

ORIGIN = "https://knower.life"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during a
    test and the test finishes, the cached references become stale.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path and clears all REQCACHE_* environment
    variables.
    """
    monkeypatch.setattr("reqcache.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["REQCACHE_ORIGIN", "REQCACHE_GENERATION", "REQCACHE_STORE_DIR"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Fake origin
# ---------------------------------------------------------------------------


class FakeOrigin:
    """A scriptable web server for :class:`httpx.MockTransport`.

    Every path answers ``200`` with a body naming the path and the current
    ``version``. Tests flip ``online``, list paths in ``broken`` to make
    them fail at the connection level, or map paths to a status code in
    ``statuses``. Paths in ``redirects`` answer ``302`` to the mapped
    location. A path mapped to an event in ``held`` waits for it once
    before answering.
    """

    def __init__(self) -> None:
        self.online = True
        self.version = 1
        self.broken: set[str] = set()
        self.statuses: dict[str, int] = {}
        self.requests: list[httpx.Request] = []
        self.redirects: dict[str, str] = {}
        self.held: dict[str, asyncio.Event] = {}

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        event = self.held.pop(path, None)
        if event is not None:
            await event.wait()
        if not self.online or path in self.broken:
            raise httpx.ConnectError("connection refused", request=request)
        if path in self.redirects:
            return httpx.Response(302, headers={"location": self.redirects[path]})
        if path.endswith(".html") or path == "/":
            content_type = "text/html; charset=utf-8"
        elif path.startswith("/api"):
            content_type = "application/json"
        else:
            content_type = "text/plain"
        return httpx.Response(
            self.statuses.get(path, 200),
            headers={"content-type": content_type},
            content=f"{path} v{self.version}".encode(),
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def hits(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)


@pytest.fixture
def origin() -> FakeOrigin:
    return FakeOrigin()


# ---------------------------------------------------------------------------
# Settings and layers
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> CacheSettings:
    return CacheSettings(origin=ORIGIN, app_id="test-app")


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    return tmp_path / "stores"


@pytest.fixture
def registry(store_root: Path) -> Iterator[CacheStoreRegistry]:
    reg = CacheStoreRegistry(store_root)
    yield reg
    reg.close()


@pytest_asyncio.fixture
async def make_layer(
    origin: FakeOrigin, store_root: Path
) -> AsyncIterator[Callable[..., CacheLayer]]:
    """Factory for layers sharing one store root and one fake origin.

    Layers built by the factory are closed at teardown. Passing a different
    ``settings`` simulates a new deploy; building a second layer with the
    same settings simulates a restart.
    """
    layers: list[CacheLayer] = []

    def _make(layer_settings: CacheSettings, host: ConsoleHost | None = None) -> CacheLayer:
        layer = CacheLayer(
            layer_settings,
            network_transport=origin.transport(),
            host=host,
            store_root=store_root,
        )
        layers.append(layer)
        return layer

    yield _make
    for layer in layers:
        await layer.aclose()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
