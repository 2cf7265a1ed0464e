"""Cache commands -- deploy generations, inspect stores, and drive the layer by hand.

Provides the top-level ``install``, ``activate``, ``status``, ``fetch``, and
``push`` commands. Each one resolves the effective configuration (see
:func:`~reqcache.config.resolve_config`), builds a
:class:`~reqcache.layer.CacheLayer`, runs one coroutine against it, and
closes it again. Layer errors are reported on stderr and mapped to the
error's exit code.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
import typer

from reqcache.exceptions import ReqcacheError
from reqcache.exit_codes import EXIT_MALFORMED_PAYLOAD
from reqcache.output import error, format_response, get_output, info, print_table, success, warning

_T = TypeVar("_T")


def _run(ctx: typer.Context, action: Callable[[Any], Awaitable[_T]]) -> _T:
    """Build a layer from the resolved config and run *action* on it."""
    from reqcache.config import resolve_config
    from reqcache.layer import CacheLayer

    obj = ctx.obj or {}

    async def _main() -> _T:
        config = resolve_config(
            cli_origin=obj.get("origin"),
            cli_generation=obj.get("generation"),
        )
        async with CacheLayer(config.cache, config.notifications) as layer:
            return await action(layer)

    try:
        return asyncio.run(_main())
    except ReqcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def install_command(
    ctx: typer.Context,
    no_activate: bool = typer.Option(
        False, "--no-activate", help="Only install; leave activation for later."
    ),
) -> None:
    """Provision the configured generation and, by default, activate it.

    The whole static manifest is fetched from the origin. If any asset
    fails, nothing is kept and the previously active generation stays in
    effect.

    Example::

        reqcache --generation 4 install
        reqcache install --no-activate
    """

    async def _install(layer: Any) -> Any:
        if no_activate:
            return await layer.controller.install()
        return await layer.deploy()

    result = _run(ctx, _install)
    if isinstance(result, str):
        success(f"Installed {result}; run 'reqcache activate' to switch over.")
    elif result is None:
        success("Installed; activation is waiting (skip_waiting is off).")
    else:
        success(f"Generation {result.generation} is active.")


def activate_command(ctx: typer.Context) -> None:
    """Activate the installed generation and delete every older store.

    Also trims the dynamic store to ``max_dynamic_entries``.
    """

    async def _activate(layer: Any) -> Any:
        return await layer.activate()

    state = _run(ctx, _activate)
    success(f"Generation {state.generation} is active.")


def status_command(ctx: typer.Context) -> None:
    """Show the active generation and every store with its entry count."""

    async def _describe(layer: Any) -> dict[str, Any]:
        return await layer.controller.describe()

    summary = _run(ctx, _describe)
    info(f"Lifecycle: {summary['lifecycle']}")
    info(f"Active generation: {summary['generation'] or 'none'}")
    rows = [[s["name"], str(s["entries"])] for s in summary["stores"]]
    print_table(["Store", "Entries"], rows, title="Stores")


def fetch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL to request through the layer."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    accept: Optional[str] = typer.Option(
        None, "--accept", help="Accept header, e.g. 'text/html' for a page load."
    ),
) -> None:
    """Send one request through the cache layer and print the response.

    The status line and where the answer came from (network, cache, or
    fallback) go to stderr; the body goes to stdout.

    Example::

        reqcache fetch https://knower.life/styles.css
        reqcache fetch https://knower.life/about --accept text/html
    """
    headers = {"accept": accept} if accept else {}

    async def _fetch(layer: Any) -> httpx.Response:
        return await layer.handle(httpx.Request(method.upper(), url, headers=headers))

    response = _run(ctx, _fetch)
    source = response.headers.get("x-reqcache-source", "network")
    info(f"HTTP {response.status_code} {response.reason_phrase} ({source})")
    content_type = response.headers.get("content-type", "")
    if response.content:
        format_response(response.text, content_type)


def push_command(
    ctx: typer.Context,
    payload: Optional[str] = typer.Argument(
        None, help="Push payload JSON, e.g. '{\"title\": \"Hi\"}'. Empty for defaults."
    ),
    action: Optional[str] = typer.Option(
        None, "--action", "-a", help="Simulate choosing an action: open or close."
    ),
) -> None:
    """Dispatch a push message and optionally act on the notification."""

    async def _push(layer: Any) -> tuple[Any, Any]:
        notification = await layer.push(payload)
        navigation = None
        if notification is not None and action is not None:
            navigation = await layer.click(notification, action)
        return notification, navigation

    notification, navigation = _run(ctx, _push)
    if notification is None:
        warning("Push payload could not be decoded; nothing was shown.")
        raise typer.Exit(code=EXIT_MALFORMED_PAYLOAD)

    get_output().format_response(notification.model_dump(mode="json"))
    if navigation is not None:
        info(f"Navigated to {navigation.url}")
