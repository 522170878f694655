from web_observer.dom.accessibility import (
    build_backend_id_maps_from_dom,
    build_hierarchical_tree,
    clean_text,
    trim_trailing_text_node,
)


def make_encoder():
    ordinals = {None: 0}

    def encode(frame_id, backend_id):
        if frame_id not in ordinals:
            ordinals[frame_id] = len(ordinals)
        return f"{ordinals[frame_id]}-{backend_id}"

    return encode


DOM = {
    "backendNodeId": 1, "nodeName": "#document", "nodeType": 9, "children": [
        {"backendNodeId": 2, "nodeName": "HTML", "nodeType": 1, "children": [
            {"backendNodeId": 3, "nodeName": "BODY", "nodeType": 1, "children": [
                {"backendNodeId": 4, "nodeName": "DIV", "nodeType": 1, "children": [
                    {"backendNodeId": 5, "nodeName": "#text", "nodeType": 3},
                ]},
                {"backendNodeId": 6, "nodeName": "BUTTON", "nodeType": 1},
                {"backendNodeId": 7, "nodeName": "DIV", "nodeType": 1},
                {"backendNodeId": 8, "nodeName": "IFRAME", "nodeType": 1, "contentDocument": {
                    "backendNodeId": 9, "nodeName": "#document", "nodeType": 9, "frameId": "F1",
                    "children": [{"backendNodeId": 10, "nodeName": "HTML", "nodeType": 1}],
                }},
            ]},
        ]},
    ],
}

AX_NODES = [
    {"nodeId": "1", "role": {"value": "RootWebArea"}, "name": {"value": "Test page"},
     "backendDOMNodeId": 1, "childIds": ["2", "6"]},
    {"nodeId": "2", "parentId": "1", "role": {"value": "generic"}, "name": {"value": ""},
     "backendDOMNodeId": 4, "childIds": ["3", "4"]},
    {"nodeId": "3", "parentId": "2", "role": {"value": "button"}, "name": {"value": "Submit"},
     "backendDOMNodeId": 6, "childIds": ["5"]},
    {"nodeId": "5", "parentId": "3", "role": {"value": "StaticText"}, "name": {"value": "Submit"},
     "backendDOMNodeId": 5},
    {"nodeId": "4", "parentId": "2", "role": {"value": "link"}, "name": {"value": "Home"},
     "backendDOMNodeId": 7,
     "properties": [{"name": "url", "value": {"type": "string", "value": "https://example.com/"}}]},
    {"nodeId": "6", "parentId": "1", "role": {"value": "Iframe"}, "name": {"value": ""},
     "backendDOMNodeId": 8},
]


def test_clean_text_drops_private_use_glyphs_and_collapses_nbsp():
    assert clean_text("\u00a0Save\u00a0\u00a0changes\ue001") == "Save changes"
    assert clean_text("a  b") == "a  b"


def test_trim_trailing_text_node():
    assert trim_trailing_text_node("/html[1]/body[1]/p[1]/text()[2]") == "/html[1]/body[1]/p[1]"
    assert trim_trailing_text_node("/html[1]/body[1]/p[1]") == "/html[1]/body[1]/p[1]"
    assert trim_trailing_text_node(None) is None


def test_backend_id_maps_build_frame_relative_xpaths():
    tags, xpaths = build_backend_id_maps_from_dom(DOM, None, make_encoder())

    assert xpaths["0-1"] == ""
    assert xpaths["0-4"] == "/html[1]/body[1]/div[1]"
    assert xpaths["0-5"] == "/html[1]/body[1]/div[1]/text()[1]"
    assert xpaths["0-6"] == "/html[1]/body[1]/button[1]"
    assert xpaths["0-7"] == "/html[1]/body[1]/div[2]"
    assert xpaths["0-8"] == "/html[1]/body[1]/iframe[1]"
    # iframe documents restart their path and get their own frame ordinal
    assert xpaths["1-9"] == ""
    assert xpaths["1-10"] == "/html[1]"
    assert tags["0-6"] == "button"
    assert set(tags) == set(xpaths)


def test_hierarchical_tree_outline_and_maps():
    tags, xpaths = build_backend_id_maps_from_dom(DOM, None, make_encoder())
    result = build_hierarchical_tree(AX_NODES, tags, xpaths)

    assert result["simplified"] == (
        "[0-1] RootWebArea: Test page\n"
        "  [0-4] div\n"
        "    [0-6] button: Submit\n"
        "    [0-7] link: Home\n"
        "  [0-8] Iframe\n"
    )
    assert result["id_to_url"] == {"0-7": "https://example.com/"}
    assert result["iframes"] == [{"role": "Iframe", "nodeId": "6", "backendDOMNodeId": 8}]
    assert result["xpath_map"] is xpaths


def test_every_encoded_id_in_outline_has_a_locator():
    tags, xpaths = build_backend_id_maps_from_dom(DOM, None, make_encoder())
    result = build_hierarchical_tree(AX_NODES, tags, xpaths)

    labels = [line.strip().split("]")[0][1:] for line in result["simplified"].splitlines()]
    for label in labels:
        if "-" in label:
            assert label in xpaths


def test_ambiguous_backend_id_stays_raw():
    tags = {"0-6": "button", "1-6": "button"}
    xpaths = {"0-6": "/html[1]/body[1]/button[1]", "1-6": "/html[1]/body[1]/button[1]"}
    nodes = [{"nodeId": "3", "role": {"value": "button"}, "name": {"value": "Go"}, "backendDOMNodeId": 6}]

    result = build_hierarchical_tree(nodes, tags, xpaths)

    assert result["simplified"] == "[3] button: Go\n"


def test_experimental_mode_shows_link_urls():
    tags, xpaths = build_backend_id_maps_from_dom(DOM, None, make_encoder())
    result = build_hierarchical_tree(AX_NODES, tags, xpaths, experimental=True)

    assert "[0-7] link: Home -> https://example.com/" in result["simplified"]
