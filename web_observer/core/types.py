from typing import Any, Dict, List, Optional, TypedDict


EncodedId = str  # "<frameOrdinal>-<backendNodeId>"


class AuxiliaryValue(TypedDict):
    value: str
    type: str


class LogLine(TypedDict, total=False):
    category: str
    message: str
    level: int  # 0 error, 1 info, 2 debug
    auxiliary: Dict[str, AuxiliaryValue]


class AccessibilityNode(TypedDict, total=False):
    nodeId: str
    role: str
    name: Optional[str]
    description: Optional[str]
    value: Optional[str]
    backendDOMNodeId: Optional[int]
    encodedId: Optional[EncodedId]
    parentId: Optional[str]
    childIds: Optional[List[str]]
    children: List["AccessibilityNode"]


class TreeResult(TypedDict):
    tree: List[AccessibilityNode]
    simplified: str
    iframes: List[AccessibilityNode]
    xpath_map: Dict[EncodedId, str]
    id_to_url: Dict[EncodedId, str]


class CombinedTree(TypedDict):
    combined_tree: str
    combined_xpath_map: Dict[EncodedId, str]
    combined_url_map: Dict[EncodedId, str]
    discovered_iframes: List[AccessibilityNode]


class ObserveElement(TypedDict, total=False):
    """One element as returned by the model, before locator resolution."""
    elementId: str
    description: str
    method: str
    arguments: List[str]


class ObserveResult(TypedDict, total=False):
    description: str
    method: str
    arguments: List[str]
    selector: str
    element_id: EncodedId


class ClientOptions(TypedDict, total=False):
    api_key: str
    base_url: str
    vertexai: bool
    project: str
    location: str
    temperature: float
    timeout: float
    max_retries: int


class ObserveState(TypedDict, total=False):
    """State flowing through the observation graph."""
    instruction: str
    request_id: str
    llm_client: Any
    return_action: bool
    from_act: bool
    iframes: bool
    draw_overlay: bool
    screenshot_path: Optional[str]
    combined_tree: str
    xpath_map: Dict[EncodedId, str]
    discovered_iframes: List[AccessibilityNode]
    elements: List[ObserveElement]
    placeholders: List[ObserveResult]
    results: List[ObserveResult]
