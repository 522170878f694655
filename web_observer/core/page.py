from typing import Any, Dict, Optional

from .config import DOM_SETTLE_TIMEOUT_MS
from .log import Logger, default_logger, log_line
from .settle import wait_for_settled_dom
from .types import EncodedId


class ObservedPage:
    """Wraps a Playwright async Page with the CDP and frame bookkeeping observation needs."""

    def __init__(self, page, logger: Logger = default_logger,
                 dom_settle_timeout_ms: int = DOM_SETTLE_TIMEOUT_MS):
        self.page = page
        self.logger = logger
        self.dom_settle_timeout_ms = dom_settle_timeout_ms
        self._cdp_session = None
        self._frame_sessions: Dict[Any, Any] = {}
        # CDP frame id -> ordinal. Ordinals only ever grow, so an EncodedId
        # can never be shared by two frames of the same page.
        self._frame_ordinals: Dict[Optional[str], int] = {None: 0}

    @property
    def main_frame(self):
        return self.page.main_frame

    async def wait_for_settled_dom(self, timeout_ms: Optional[int] = None) -> None:
        await wait_for_settled_dom(self.page, timeout_ms or self.dom_settle_timeout_ms)

    async def get_cdp_client(self, frame=None):
        """Return the page session, or a dedicated session for an out-of-process frame."""
        if frame is None or frame == self.main_frame:
            if self._cdp_session is None:
                self._cdp_session = await self.page.context.new_cdp_session(self.page)
            return self._cdp_session
        if frame not in self._frame_sessions:
            try:
                self._frame_sessions[frame] = await self.page.context.new_cdp_session(frame)
            except Exception:
                # same-process iframes have no target of their own
                self._frame_sessions[frame] = None
        return self._frame_sessions[frame] or await self.get_cdp_client()

    async def is_oopif(self, frame) -> bool:
        if frame is None or frame == self.main_frame:
            return False
        session = await self.get_cdp_client(frame)
        return session is not await self.get_cdp_client()

    async def send_cdp(self, method: str, params: Optional[Dict[str, Any]] = None, frame=None) -> Dict[str, Any]:
        session = await self.get_cdp_client(frame)
        return await session.send(method, params or {})

    def frame_ordinal(self, frame_id: Optional[str]) -> int:
        if frame_id not in self._frame_ordinals:
            self._frame_ordinals[frame_id] = len(self._frame_ordinals)
        return self._frame_ordinals[frame_id]

    def encode_with_frame_id(self, frame_id: Optional[str], backend_node_id: int) -> EncodedId:
        return f"{self.frame_ordinal(frame_id)}-{backend_node_id}"

    async def get_cdp_frame_id(self, frame) -> Optional[str]:
        """Resolve the CDP frame id of a Playwright frame (None for the main frame)."""
        if frame is None or frame == self.main_frame:
            return None

        depth = 0
        parent = frame.parent_frame
        while parent:
            depth += 1
            parent = parent.parent_frame

        def find_by_url_depth(node: Dict[str, Any], level: int = 0) -> Optional[str]:
            if level == depth and node["frame"]["url"] == frame.url:
                return node["frame"]["id"]
            for child in node.get("childFrames", []):
                found = find_by_url_depth(child, level + 1)
                if found:
                    return found
            return None

        tree = await self.send_cdp("Page.getFrameTree")
        same_proc_id = find_by_url_depth(tree["frameTree"])
        if same_proc_id:
            return same_proc_id

        if await self.is_oopif(frame):
            own = await self.send_cdp("Page.getFrameTree", frame=frame)
            return own["frameTree"]["frame"]["id"]

        self.logger(log_line("observation", f"could not resolve frame id for {frame.url}", 2))
        return None
