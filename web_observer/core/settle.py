import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Set

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import DOM_SETTLE_QUIET_MS, DOM_SETTLE_TIMEOUT_MS, WAIT_UNTIL_TRUTHY_TIMEOUT_MS
from .errors import DomSettleTimeoutError, WaitTimeoutError

# Long-lived connections never "finish" and would keep the page unsettled forever.
IGNORED_RESOURCE_TYPES = {"websocket", "eventsource"}


async def wait_for_settled_dom(
    page,
    timeout_ms: int = DOM_SETTLE_TIMEOUT_MS,
    quiet_ms: int = DOM_SETTLE_QUIET_MS,
) -> None:
    """Wait until the DOM is loaded and no network request has been in flight for quiet_ms."""
    loop = asyncio.get_running_loop()
    deadline = time.monotonic() + timeout_ms / 1000
    inflight: Set[Any] = set()
    settled = asyncio.Event()
    quiet_timer: Optional[asyncio.TimerHandle] = None

    def arm_quiet_timer() -> None:
        nonlocal quiet_timer
        if quiet_timer:
            quiet_timer.cancel()
        quiet_timer = loop.call_later(quiet_ms / 1000, settled.set)

    def on_request(request) -> None:
        nonlocal quiet_timer
        if request.resource_type in IGNORED_RESOURCE_TYPES:
            return
        inflight.add(request)
        if quiet_timer:
            quiet_timer.cancel()
            quiet_timer = None

    def on_request_done(request) -> None:
        if request not in inflight:
            return
        inflight.discard(request)
        if not inflight:
            arm_quiet_timer()

    page.on("request", on_request)
    page.on("requestfinished", on_request_done)
    page.on("requestfailed", on_request_done)
    try:
        try:
            await page.wait_for_load_state("domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise DomSettleTimeoutError(
                f"DOM did not load within {timeout_ms}ms") from e

        if not inflight:
            arm_quiet_timer()

        remaining = max(deadline - time.monotonic(), 0)
        try:
            await asyncio.wait_for(settled.wait(), timeout=remaining)
        except asyncio.TimeoutError as e:
            raise DomSettleTimeoutError(
                f"DOM did not settle within {timeout_ms}ms "
                f"({len(inflight)} request(s) still in flight)") from e
    finally:
        if quiet_timer:
            quiet_timer.cancel()
        page.remove_listener("request", on_request)
        page.remove_listener("requestfinished", on_request_done)
        page.remove_listener("requestfailed", on_request_done)


async def wait_until_truthy(
    locator,
    fn: Optional[Callable[[Any], Awaitable[Any]]] = None,
    timeout_ms: int = WAIT_UNTIL_TRUTHY_TIMEOUT_MS,
) -> Any:
    """Poll a locator until it is visible and fn(locator) returns something truthy."""
    start = time.monotonic()

    def elapsed_ms() -> float:
        return (time.monotonic() - start) * 1000

    while elapsed_ms() < timeout_ms:
        try:
            await locator.wait_for(state="visible", timeout=max(timeout_ms - elapsed_ms(), 1))
            result: Any = True
            if fn:
                result = await fn(locator)
            if result:
                return result
        except PlaywrightTimeoutError:
            continue

        # avoid a tight loop while the matcher keeps failing
        await asyncio.sleep(0.1)

    raise WaitTimeoutError(
        f"Attempted to wait for {timeout_ms}ms, but matcher still failed for {locator}")
