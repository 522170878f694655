import re
from typing import Dict, List, Optional

from ..core.log import Logger, aux, default_logger, log_line
from ..core.types import CombinedTree, EncodedId
from .accessibility import get_accessibility_tree

LABEL_RE = re.compile(r"^\s*\[([^\]]+)]")
ENCODED_RE = re.compile(r"^\d+-\d+$")

FRAME_XPATH_JS = """
(node) => {
    const pos = (el) => {
        let i = 1;
        for (let sib = el.previousElementSibling; sib; sib = sib.previousElementSibling) {
            if (sib.tagName === el.tagName) i += 1;
        }
        return i;
    };
    const segs = [];
    for (let el = node; el; el = el.parentElement) {
        segs.unshift(`${el.tagName.toLowerCase()}[${pos(el)}]`);
    }
    return `/${segs.join("/")}`;
}
"""


class FrameSnapshot:
    """Encoded tree of one frame plus where its host iframe sits in the combined document."""

    def __init__(self, tree: str, xpath_map: Dict[EncodedId, str], url_map: Dict[EncodedId, str],
                 prefix: str, host_id: Optional[EncodedId] = None):
        self.tree = tree
        self.xpath_map = xpath_map
        self.url_map = url_map
        self.prefix = prefix
        self.host_id = host_id


def join_xpath(prefix: str, local: str) -> str:
    if not prefix:
        return local or "/"
    if not local:
        return prefix
    return f"{prefix.rstrip('/')}/{local.lstrip('/')}"


def merge_snapshots(snapshots: List[FrameSnapshot]) -> Dict[str, Dict[EncodedId, str]]:
    """Merge per-frame maps, rebasing each frame's xpaths onto its host iframe's absolute path."""
    combined_xpath_map: Dict[EncodedId, str] = {}
    combined_url_map: Dict[EncodedId, str] = {}
    for snap in snapshots:
        for enc, local in snap.xpath_map.items():
            combined_xpath_map[enc] = join_xpath(snap.prefix, local)
        combined_url_map.update(snap.url_map)
    return {"xpath": combined_xpath_map, "url": combined_url_map}


def inject_subtrees(tree: str, id_to_tree: Dict[EncodedId, str]) -> str:
    """Splice each child frame's outline in right below the line of its host iframe."""

    def unique_by_backend(backend_id: int) -> Optional[EncodedId]:
        hits = [enc for enc in id_to_tree if int(enc.split("-")[1]) == backend_id]
        return hits[0] if len(hits) == 1 else None

    stack = [[tree.split("\n"), 0, ""]]
    out: List[str] = []
    visited = set()

    while stack:
        top = stack[-1]
        lines, idx, indent = top
        if idx >= len(lines):
            stack.pop()
            continue
        top[1] += 1
        raw = lines[idx]
        line = indent + raw
        out.append(line)

        m = LABEL_RE.match(raw)
        if not m:
            continue
        label = m.group(1)
        enc = label if label in id_to_tree else None
        if enc is None:
            if ENCODED_RE.match(label):
                enc = unique_by_backend(int(label.split("-")[1]))
            elif label.isdigit():
                enc = unique_by_backend(int(label))
        if not enc or enc in visited:
            continue

        visited.add(enc)
        line_indent = re.match(r"^(\s*)", line).group(0)
        stack.append([id_to_tree[enc].split("\n"), 0, line_indent + "  "])

    return "\n".join(out)


async def get_accessibility_tree_flat(page, experimental: bool = False,
                                      logger: Logger = default_logger) -> CombinedTree:
    """Encode only the top frame; nested frames are reported, not traversed."""
    result = await get_accessibility_tree(page, experimental, logger)
    # same rebasing as recursive mode, so a node gets one xpath in both modes
    merged = merge_snapshots([FrameSnapshot(result["simplified"], result["xpath_map"], result["id_to_url"], "")])
    return {
        "combined_tree": result["simplified"],
        "combined_xpath_map": merged["xpath"],
        "combined_url_map": merged["url"],
        "discovered_iframes": result["iframes"],
    }


async def get_frame_root_xpath(frame) -> str:
    handle = await frame.frame_element()
    if not handle:
        return "/"
    return await handle.evaluate(FRAME_XPATH_JS)


async def get_accessibility_tree_with_frames(page, experimental: bool = False,
                                             logger: Logger = default_logger) -> CombinedTree:
    """Encode the top frame and every nested frame into one combined tree and locator map."""
    main = page.main_frame
    snapshots: List[FrameSnapshot] = []
    # (frame, absolute xpath of the document that hosts it)
    frame_stack = [(main, "")]

    while frame_stack:
        frame, parent_prefix = frame_stack.pop()
        try:
            result = await get_accessibility_tree(page, experimental, logger, frame)
            prefix = ""
            host_id = None
            if frame != main:
                prefix = join_xpath(parent_prefix, await get_frame_root_xpath(frame))
                frame_id = await page.get_cdp_frame_id(frame)
                if frame_id:
                    owner = await page.send_cdp("DOM.getFrameOwner", {"frameId": frame_id})
                    parent_frame_id = await page.get_cdp_frame_id(frame.parent_frame)
                    host_id = page.encode_with_frame_id(parent_frame_id, owner["backendNodeId"])
            snapshots.append(FrameSnapshot(result["simplified"].rstrip(), result["xpath_map"],
                                           result["id_to_url"], prefix, host_id))
        except Exception as e:
            # one unreadable frame should not hide the rest of the page
            where = "main frame" if frame == main else f"iframe ({frame.url})"
            logger(log_line("observation", f"failed to get AX tree for {where}", 0, aux(error=str(e))))
            if frame == main:
                raise
            continue

        for child in reversed(frame.child_frames):
            frame_stack.append((child, prefix))

    merged = merge_snapshots(snapshots)
    id_to_tree = {s.host_id: s.tree for s in snapshots if s.host_id}
    root = snapshots[0].tree if snapshots else ""

    return {
        "combined_tree": inject_subtrees(root, id_to_tree),
        "combined_xpath_map": merged["xpath"],
        "combined_url_map": merged["url"],
        "discovered_iframes": [],
    }
