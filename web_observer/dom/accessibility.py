"""
Accessibility tree encoding.

Turns the raw CDP accessibility and DOM payloads of one frame into a
simplified, indented outline for the model plus an EncodedId -> xpath map
used to turn the model's answer back into locators.
"""

import re
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..core.log import Logger, default_logger, log_line
from ..core.types import AccessibilityNode, EncodedId, TreeResult

STRUCTURAL_ROLES = ("generic", "none")
TEXT_NODE = 3
COMMENT_NODE = 8

# Private Use Area glyphs (icon fonts) carry no meaning for the model
PUA_START = 0xE000
PUA_END = 0xF8FF
NBSP_CHARS = {0x00A0, 0x202F, 0x2007, 0xFEFF}

TRAILING_TEXT_NODE = re.compile(r"/text\(\)(\[\d+])?$")

Encoder = Callable[[Optional[str], int], EncodedId]


def clean_text(value: str) -> str:
    """Drop private-use glyphs, collapse NBSP-family runs to one space, trim."""
    out = []
    prev_was_space = False
    for char in value:
        code = ord(char)
        if PUA_START <= code <= PUA_END:
            continue
        if code in NBSP_CHARS:
            if not prev_was_space:
                out.append(" ")
                prev_was_space = True
            continue
        out.append(char)
        prev_was_space = char == " "
    return "".join(out).strip()


def trim_trailing_text_node(xpath: Optional[str]) -> Optional[str]:
    if xpath is None:
        return None
    return TRAILING_TEXT_NODE.sub("", xpath)


def format_simplified_tree(node: AccessibilityNode, level: int = 0) -> str:
    indent = "  " * level
    label = node.get("encodedId") or node.get("nodeId", "")
    name = node.get("name") or ""
    name_part = f": {clean_text(name)}" if name else ""
    line = f"{indent}[{label}] {node.get('role', '')}{name_part}\n"
    return line + "".join(format_simplified_tree(c, level + 1) for c in node.get("children", []))


def build_backend_id_maps_from_dom(
    start_node: Dict[str, Any],
    root_frame_id: Optional[str],
    encode: Encoder,
) -> Tuple[Dict[EncodedId, str], Dict[EncodedId, str]]:
    """Walk a DOM.getDocument tree and map EncodedIds to tag names and frame-relative xpaths."""
    tag_name_map: Dict[EncodedId, str] = {}
    xpath_map: Dict[EncodedId, str] = {}
    seen: Set[EncodedId] = set()

    stack: List[Tuple[Dict[str, Any], str, Optional[str]]] = [(start_node, "", root_frame_id)]
    while stack:
        node, path, frame_id = stack.pop()
        backend_id = node.get("backendNodeId")
        if not backend_id:
            continue
        enc = encode(frame_id, backend_id)
        if enc in seen:
            continue
        seen.add(enc)

        tag = (node.get("nodeName") or "").lower()
        tag_name_map[enc] = tag
        xpath_map[enc] = path

        # iframe documents restart the xpath from their own root
        if tag == "iframe" and "contentDocument" in node:
            content = node["contentDocument"]
            stack.append((content, "", content.get("frameId", frame_id)))

        kids = node.get("children") or []
        counters: Dict[str, int] = {}
        segments = []
        for child in kids:
            child_tag = (child.get("nodeName") or "").lower()
            node_type = child.get("nodeType", 1)
            key = f"{node_type}:{child_tag}"
            counters[key] = counters.get(key, 0) + 1
            idx = counters[key]
            if node_type == TEXT_NODE:
                segments.append(f"text()[{idx}]")
            elif node_type == COMMENT_NODE:
                segments.append(f"comment()[{idx}]")
            else:
                segments.append(f"{child_tag}[{idx}]")

        # push right-to-left so the walk stays left-to-right
        for i in range(len(kids) - 1, -1, -1):
            stack.append((kids[i], f"{path}/{segments[i]}", frame_id))

    return tag_name_map, xpath_map


def remove_redundant_static_text_children(
    parent: AccessibilityNode, children: List[AccessibilityNode]
) -> List[AccessibilityNode]:
    parent_text = (parent.get("name") or "").strip()
    if not parent_text:
        return children
    return [
        c for c in children
        if not (c.get("role") == "StaticText" and (c.get("name") or "").strip() == parent_text)
    ]


def clean_structural_nodes(
    node: AccessibilityNode, tag_name_map: Dict[EncodedId, str]
) -> Optional[AccessibilityNode]:
    """Prune empty wrappers and collapse single-child generic nodes."""
    if int(node.get("nodeId", 0)) < 0:
        return None

    children = node.get("children") or []
    role = node.get("role", "")
    if not children:
        return None if role in STRUCTURAL_ROLES else node

    cleaned = [c for c in (clean_structural_nodes(c, tag_name_map) for c in children) if c]

    structural = role in STRUCTURAL_ROLES
    if structural:
        if len(cleaned) == 1:
            return cleaned[0]
        if not cleaned:
            return None
        tag_name = tag_name_map.get(node.get("encodedId") or "")
        if tag_name:
            role = tag_name

    pruned = remove_redundant_static_text_children(node, cleaned)
    if not pruned and structural:
        return None
    return {**node, "role": role, "children": pruned}


def _ax_value(node: Dict[str, Any], key: str) -> Any:
    obj = node.get(key)
    return obj.get("value") if isinstance(obj, dict) else None


def extract_url_from_ax_node(node: Dict[str, Any]) -> Optional[str]:
    if _ax_value(node, "role") != "link":
        return None
    value = node.get("value")
    if isinstance(value, dict) and value.get("type") == "url":
        return value.get("value")
    for prop in node.get("properties") or []:
        if prop.get("name") == "url":
            return _ax_value(prop, "value")
    return None


def build_hierarchical_tree(
    nodes: List[Dict[str, Any]],
    tag_name_map: Dict[EncodedId, str],
    xpath_map: Dict[EncodedId, str],
    experimental: bool = False,
) -> TreeResult:
    """Convert flat CDP AX nodes into a cleaned tree, its outline, and the iframe hosts found."""
    id_to_url: Dict[EncodedId, str] = {}
    node_map: Dict[str, AccessibilityNode] = {}
    iframes: List[AccessibilityNode] = []

    backend_to_ids: Dict[int, List[EncodedId]] = {}
    for enc in tag_name_map:
        backend_to_ids.setdefault(int(enc.split("-")[1]), []).append(enc)

    for node in nodes:
        node_id = node.get("nodeId", "")
        if int(node_id) < 0:
            continue
        role = _ax_value(node, "role") or ""
        name = _ax_value(node, "name") or ""
        keep = name.strip() or node.get("childIds") or role not in ("none", "generic", "InlineTextBox")
        if not keep:
            continue

        encoded_id = None
        backend_id = node.get("backendDOMNodeId")
        if backend_id is not None:
            matches = backend_to_ids.get(backend_id, [])
            # an ambiguous backend id is left raw rather than guessed
            if len(matches) == 1:
                encoded_id = matches[0]

        rich: AccessibilityNode = {"nodeId": node_id, "role": role}
        if encoded_id:
            rich["encodedId"] = encoded_id
            url = extract_url_from_ax_node(node)
            if url:
                id_to_url[encoded_id] = url
                if experimental:
                    name = f"{name} -> {url}" if name else url
        if name:
            rich["name"] = name
        description = _ax_value(node, "description")
        if description:
            rich["description"] = description
        value = _ax_value(node, "value")
        if value:
            rich["value"] = str(value)
        if backend_id is not None:
            rich["backendDOMNodeId"] = backend_id
        node_map[node_id] = rich

    for node in nodes:
        node_id = node.get("nodeId", "")
        if _ax_value(node, "role") == "Iframe":
            host: AccessibilityNode = {"role": "Iframe", "nodeId": node_id}
            if node.get("backendDOMNodeId") is not None:
                host["backendDOMNodeId"] = node["backendDOMNodeId"]
            iframes.append(host)
        parent = node_map.get(node.get("parentId") or "")
        current = node_map.get(node_id)
        if parent is not None and current is not None:
            parent.setdefault("children", []).append(current)

    roots = [node_map[n["nodeId"]] for n in nodes
             if not n.get("parentId") and n.get("nodeId") in node_map]
    cleaned_roots = [c for c in (clean_structural_nodes(r, tag_name_map) for r in roots) if c]

    return {
        "tree": cleaned_roots,
        "simplified": "\n".join(format_simplified_tree(r) for r in cleaned_roots),
        "iframes": iframes,
        "xpath_map": xpath_map,
        "id_to_url": id_to_url,
    }


async def build_backend_id_maps(page, frame=None) -> Tuple[Dict[EncodedId, str], Dict[EncodedId, str]]:
    """Fetch the DOM of one frame (or the main document) and build its backend id maps."""
    oopif = await page.is_oopif(frame)
    session_frame = frame if oopif else None
    await page.send_cdp("DOM.enable", frame=session_frame)
    try:
        response = await page.send_cdp("DOM.getDocument", {"depth": -1, "pierce": True}, session_frame)
        root = response["root"]
        start_node = root
        root_frame_id = None

        if frame is not None and frame != page.main_frame:
            root_frame_id = await page.get_cdp_frame_id(frame)
            if not oopif:
                owner = await page.send_cdp("DOM.getFrameOwner", {"frameId": root_frame_id})
                host = _find_backend_node(root, owner["backendNodeId"])
                if not host or "contentDocument" not in host:
                    raise RuntimeError("iframe element or its contentDocument not found")
                start_node = host["contentDocument"]
                root_frame_id = start_node.get("frameId", root_frame_id)

        return build_backend_id_maps_from_dom(start_node, root_frame_id, page.encode_with_frame_id)
    finally:
        await page.send_cdp("DOM.disable", frame=session_frame)


def _find_backend_node(node: Dict[str, Any], backend_id: int) -> Optional[Dict[str, Any]]:
    stack = [node]
    while stack:
        current = stack.pop()
        if current.get("backendNodeId") == backend_id:
            return current
        stack.extend(current.get("children") or [])
        if "contentDocument" in current:
            stack.append(current["contentDocument"])
        stack.extend(current.get("shadowRoots") or [])
    return None


async def get_accessibility_tree(
    page,
    experimental: bool = False,
    logger: Logger = default_logger,
    frame=None,
) -> TreeResult:
    """Encode the accessibility tree of one frame (the main frame when frame is None)."""
    tag_name_map, xpath_map = await build_backend_id_maps(page, frame)

    params: Dict[str, Any] = {}
    session_frame = frame
    if frame is not None and frame != page.main_frame and not await page.is_oopif(frame):
        frame_id = await page.get_cdp_frame_id(frame)
        logger(log_line("observation", f"same-proc iframe: frameId={frame_id}. Using existing CDP session.", 2))
        if frame_id:
            params["frameId"] = frame_id
        session_frame = None

    await page.send_cdp("Accessibility.enable", frame=session_frame)
    try:
        response = await page.send_cdp("Accessibility.getFullAXTree", params, session_frame)
    finally:
        await page.send_cdp("Accessibility.disable", frame=session_frame)

    return build_hierarchical_tree(response.get("nodes", []), tag_name_map, xpath_map, experimental)
