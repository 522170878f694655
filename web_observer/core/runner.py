from typing import List, Optional
from uuid import uuid4

from playwright.async_api import async_playwright

from ..agents.observer import ObservationResolver
from ..llm.provider import ModelGateway
from .log import default_logger
from .metrics import UsageMetrics
from .page import ObservedPage
from .types import ClientOptions, ObserveResult


async def run(
    url: str,
    instruction: Optional[str] = None,
    model_name: str = "gpt-4o",
    client_options: Optional[ClientOptions] = None,
    iframes: bool = False,
    screenshot_path: Optional[str] = None,
    headless: bool = True,
) -> List[ObserveResult]:
    """Open url in a fresh browser, observe it once and return the results."""
    gateway = ModelGateway(default_logger, enable_caching=True)
    llm_client = gateway.get_client(model_name, client_options)
    request_id = str(uuid4())
    print(f"[Observer] Observing {url} with {model_name}")

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=headless)
        try:
            page = await browser.new_page()
            await page.goto(url)
            resolver = ObservationResolver(ObservedPage(page), metrics=UsageMetrics())
            results = await resolver.observe(
                instruction or "",
                llm_client,
                request_id=request_id,
                iframes=iframes,
                screenshot_path=screenshot_path,
            )
            m = resolver.metrics
            print(f"[Observer] tokens: prompt={m.total_prompt_tokens} "
                  f"completion={m.total_completion_tokens} time={m.total_inference_time_ms}ms")
        finally:
            await browser.close()
            gateway.clean_request_cache(request_id)

    return results


def print_summary(url: str, results: List[ObserveResult]) -> None:
    print("\n=== Observe result ===")
    print("URL:", url)
    if not results:
        print("No matching elements.")
        return
    print("Elements (id | method | selector | description):")
    for r in results:
        print(f"  - {r.get('element_id', '-')} | {r.get('method', '-')} | "
              f"{r.get('selector')} | {r.get('description')}")
