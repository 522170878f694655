import asyncio
from pathlib import Path
from typing import Dict, List, Optional
from uuid import uuid4

from langgraph.graph import END, StateGraph

from ..core.config import DEFAULT_OBSERVE_INSTRUCTION, NOT_SUPPORTED
from ..core.log import Logger, aux, default_logger, log_line
from ..core.metrics import UsageMetrics
from ..core.types import EncodedId, ObserveElement, ObserveResult, ObserveState
from ..dom.accessibility import trim_trailing_text_node
from ..dom.frames import get_accessibility_tree_flat, get_accessibility_tree_with_frames
from ..dom.overlay import draw_observe_overlay, drawable_selectors
from ..utils.imaging import annotate_screenshot
from .inference import observe_inference

SHADOW_DOM_STUB: ObserveResult = {
    "description": "an element inside a shadow DOM",
    "method": NOT_SUPPORTED,
    "arguments": [],
    "selector": NOT_SUPPORTED,
}


class ObservationResolver:
    """Turns an instruction into locator-backed ObserveResults for one page.

    The pipeline runs as a small graph: settle -> capture_tree -> infer ->
    add_iframe_placeholders -> resolve_selectors [-> overlay].
    """

    def __init__(
        self,
        page,
        logger: Logger = default_logger,
        metrics: Optional[UsageMetrics] = None,
        user_provided_instructions: Optional[str] = None,
        experimental: bool = False,
    ):
        self.page = page
        self.logger = logger
        self.metrics = metrics or UsageMetrics()
        self.user_provided_instructions = user_provided_instructions
        self.experimental = experimental
        self.app = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(ObserveState)
        graph.add_node("settle", self.settle)
        graph.add_node("capture_tree", self.capture_tree)
        graph.add_node("infer", self.infer)
        graph.add_node("add_iframe_placeholders", self.add_iframe_placeholders)
        graph.add_node("resolve_selectors", self.resolve_selectors)
        graph.add_node("overlay", self.overlay)

        graph.set_entry_point("settle")
        graph.add_edge("settle", "capture_tree")
        graph.add_edge("capture_tree", "infer")
        graph.add_edge("infer", "add_iframe_placeholders")
        graph.add_edge("add_iframe_placeholders", "resolve_selectors")
        graph.add_conditional_edges(
            "resolve_selectors",
            self.wants_overlay,
            {"overlay": "overlay", END: END},
        )
        graph.add_edge("overlay", END)
        return graph.compile()

    async def observe(
        self,
        instruction: str,
        llm_client,
        request_id: Optional[str] = None,
        return_action: bool = True,
        only_visible: Optional[bool] = None,
        draw_overlay: bool = False,
        from_act: bool = False,
        iframes: bool = False,
        screenshot_path: Optional[str] = None,
    ) -> List[ObserveResult]:
        if not instruction:
            instruction = DEFAULT_OBSERVE_INSTRUCTION

        self.logger(log_line("observation", "starting observation", 1, aux(instruction=instruction)))
        if only_visible is not None:
            self.logger(log_line(
                "observation",
                "Warning: the `only_visible` parameter has no effect and will be removed in a future version.",
                1,
            ))

        state: ObserveState = {
            "instruction": instruction,
            "request_id": request_id or str(uuid4()),
            "llm_client": llm_client,
            "return_action": return_action,
            "from_act": from_act,
            "iframes": iframes,
            "draw_overlay": draw_overlay,
            "screenshot_path": screenshot_path,
            "combined_tree": "",
            "xpath_map": {},
            "discovered_iframes": [],
            "elements": [],
            "placeholders": [],
            "results": [],
        }
        final_state = await self.app.ainvoke(state)
        return final_state["results"]

    async def settle(self, state: ObserveState) -> ObserveState:
        await self.page.wait_for_settled_dom()
        return state

    async def capture_tree(self, state: ObserveState) -> ObserveState:
        self.logger(log_line("observation", "Getting accessibility tree data", 1))
        if state.get("iframes"):
            combined = await get_accessibility_tree_with_frames(self.page, self.experimental, self.logger)
        else:
            combined = await get_accessibility_tree_flat(self.page, self.experimental, self.logger)
        state["combined_tree"] = combined["combined_tree"]
        state["xpath_map"] = combined["combined_xpath_map"]
        state["discovered_iframes"] = combined["discovered_iframes"]
        return state

    async def infer(self, state: ObserveState) -> ObserveState:
        response = await observe_inference(
            instruction=state["instruction"],
            dom_elements=state["combined_tree"],
            llm_client=state["llm_client"],
            request_id=state["request_id"],
            user_provided_instructions=self.user_provided_instructions,
            logger=self.logger,
            return_action=state.get("return_action", True),
            from_act=state.get("from_act", False),
        )
        self.metrics.update(
            "act" if state.get("from_act") else "observe",
            response["prompt_tokens"],
            response["completion_tokens"],
            response["inference_time_ms"],
        )
        state["elements"] = response["elements"]
        return state

    async def add_iframe_placeholders(self, state: ObserveState) -> ObserveState:
        iframes = state.get("discovered_iframes") or []
        if not iframes:
            return state
        self.logger(log_line(
            "observation",
            f"Warning: found {len(iframes)} iframe(s) on the page. If you wish to interact with "
            "iframe content, please make sure you are setting iframes: true",
            1,
        ))
        placeholders: List[ObserveResult] = []
        for iframe in iframes:
            backend_id = iframe.get("backendDOMNodeId")
            if backend_id is None:
                backend_id = int(iframe["nodeId"])
            placeholders.append({
                "description": "an iframe",
                "method": NOT_SUPPORTED,
                "arguments": [],
                "selector": NOT_SUPPORTED,
                "element_id": self.page.encode_with_frame_id(None, backend_id),
            })
        state["placeholders"] = placeholders
        return state

    async def resolve_element(
        self, element: ObserveElement, xpath_map: Dict[EncodedId, str]
    ) -> Optional[ObserveResult]:
        element_id = element["elementId"]
        self.logger(log_line("observation", "Getting xpath for element", 2, aux(elementId=element_id)))

        if "-" not in element_id:
            self.logger(log_line("observation", f"Element is inside a shadow DOM: {element_id}", 0))
            return dict(SHADOW_DOM_STUB)  # type: ignore[return-value]

        xpath = trim_trailing_text_node(xpath_map.get(element_id))
        if not xpath:
            self.logger(log_line("observation", "Empty xpath returned for element", 1,
                                 aux(observeResult=dict(element))))
            return None

        result: ObserveResult = {
            k: element[k] for k in ("description", "method", "arguments") if k in element  # type: ignore[misc]
        }
        result["selector"] = NOT_SUPPORTED if element.get("method") == NOT_SUPPORTED else f"xpath={xpath}"
        result["element_id"] = element_id
        return result

    async def resolve_selectors(self, state: ObserveState) -> ObserveState:
        xpath_map = state.get("xpath_map") or {}
        # fan out, then filter in the model's order
        resolved = await asyncio.gather(
            *(self.resolve_element(e, xpath_map) for e in state.get("elements") or []))
        results = [r for r in resolved if r is not None]
        results.extend(state.get("placeholders") or [])

        self.logger(log_line("observation", "found elements", 1, aux(elements=results)))
        state["results"] = results
        return state

    def wants_overlay(self, state: ObserveState) -> str:
        if state.get("draw_overlay") or state.get("screenshot_path"):
            return "overlay"
        return END

    async def overlay(self, state: ObserveState) -> ObserveState:
        results = state.get("results") or []
        if state.get("draw_overlay"):
            try:
                await draw_observe_overlay(self.page.page, results)
            except Exception as e:
                self.logger(log_line("observation", "failed to draw observe overlay", 1, aux(error=str(e))))
        if state.get("screenshot_path"):
            try:
                await self.save_annotated_screenshot(results, Path(state["screenshot_path"]))
            except Exception as e:
                self.logger(log_line("observation", "failed to annotate screenshot", 1, aux(error=str(e))))
        return state

    async def save_annotated_screenshot(self, results: List[ObserveResult], path: Path) -> Path:
        boxes = []
        for i, selector in enumerate(drawable_selectors(results)):
            box = await self.page.page.locator(selector).first.bounding_box()
            if box:
                boxes.append({**box, "label": i})
        await self.page.page.screenshot(path=str(path))
        return annotate_screenshot(path, boxes)
