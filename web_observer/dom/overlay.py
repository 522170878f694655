from typing import List

from ..core.config import NOT_SUPPORTED
from ..core.types import ObserveResult

OVERLAY_ATTR = "data-web-observer-overlay"

DRAW_OVERLAY_JS = """
([selectors, attr]) => {
    selectors.forEach((selector) => {
        let element;
        if (selector.startsWith("xpath=")) {
            element = document.evaluate(
                selector.substring(6), document, null,
                XPathResult.FIRST_ORDERED_NODE_TYPE, null,
            ).singleNodeValue;
        } else {
            element = document.querySelector(selector);
        }
        if (!(element instanceof HTMLElement)) return;
        const rect = element.getBoundingClientRect();
        const overlay = document.createElement("div");
        overlay.setAttribute(attr, "true");
        Object.assign(overlay.style, {
            position: "absolute",
            left: `${rect.left + window.scrollX}px`,
            top: `${rect.top + window.scrollY}px`,
            width: `${rect.width}px`,
            height: `${rect.height}px`,
            backgroundColor: "rgba(255, 255, 0, 0.3)",
            pointerEvents: "none",
            zIndex: "10000",
        });
        document.body.appendChild(overlay);
    });
}
"""

CLEAR_OVERLAY_JS = """
(attr) => {
    document.querySelectorAll(`[${attr}="true"]`).forEach((el) => el.remove());
}
"""


def drawable_selectors(results: List[ObserveResult]) -> List[str]:
    return [
        r["selector"] for r in results
        if r.get("selector") and r["selector"] not in ("xpath=", NOT_SUPPORTED)
    ]


async def draw_observe_overlay(page, results: List[ObserveResult]) -> None:
    """Highlight every resolvable result with a click-through yellow box."""
    selectors = drawable_selectors(results)
    if selectors:
        await page.evaluate(DRAW_OVERLAY_JS, [selectors, OVERLAY_ATTR])


async def clear_overlays(page) -> None:
    await page.evaluate(CLEAR_OVERLAY_JS, OVERLAY_ATTR)
