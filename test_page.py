import asyncio

from web_observer.core.page import ObservedPage


class FakeSession:
    def __init__(self, name, frame_tree=None):
        self.name = name
        self.frame_tree = frame_tree
        self.sent = []

    async def send(self, method, params):
        self.sent.append((method, params))
        if method == "Page.getFrameTree":
            return {"frameTree": self.frame_tree}
        return {}


class FakeFrame:
    def __init__(self, url, parent=None):
        self.url = url
        self.parent_frame = parent


class FakeContext:
    def __init__(self, page_session, oopif_sessions):
        self.page_session = page_session
        self.oopif_sessions = oopif_sessions

    async def new_cdp_session(self, target):
        if isinstance(target, FakeFrame):
            if target not in self.oopif_sessions:
                raise RuntimeError("not a separate target")
            return self.oopif_sessions[target]
        return self.page_session


class FakePlaywrightPage:
    def __init__(self, main_frame, context):
        self.main_frame = main_frame
        self.context = context


def build(frame_tree, oopif_sessions=None):
    main = FakeFrame("https://example.com")
    session = FakeSession("page", frame_tree)
    page = FakePlaywrightPage(main, FakeContext(session, oopif_sessions or {}))
    return ObservedPage(page, logger=lambda line: None), main, session


def test_frame_ordinals_are_stable_and_distinct():
    page, _, _ = build({})
    assert page.encode_with_frame_id(None, 5) == "0-5"
    assert page.encode_with_frame_id("F1", 5) == "1-5"
    assert page.encode_with_frame_id("F2", 9) == "2-9"
    assert page.encode_with_frame_id("F1", 7) == "1-7"


def test_same_process_frame_resolves_through_page_tree():
    tree = {"frame": {"id": "MAIN", "url": "https://example.com"},
            "childFrames": [{"frame": {"id": "CHILD", "url": "https://example.com/embed"}}]}
    page, main, session = build(tree)
    child = FakeFrame("https://example.com/embed", main)

    assert asyncio.run(page.get_cdp_frame_id(main)) is None
    assert asyncio.run(page.get_cdp_frame_id(child)) == "CHILD"
    assert asyncio.run(page.is_oopif(child)) is False


def test_out_of_process_frame_uses_its_own_session():
    page_tree = {"frame": {"id": "MAIN", "url": "https://example.com"}, "childFrames": []}
    main = FakeFrame("https://example.com")
    child = FakeFrame("https://ads.example.net", main)
    oopif = FakeSession("oopif", {"frame": {"id": "OOPIF", "url": "https://ads.example.net"}})
    page = ObservedPage(FakePlaywrightPage(main, FakeContext(FakeSession("page", page_tree), {child: oopif})),
                        logger=lambda line: None)

    assert asyncio.run(page.is_oopif(child)) is True
    assert asyncio.run(page.get_cdp_frame_id(child)) == "OOPIF"
    asyncio.run(page.send_cdp("DOM.enable", frame=child))
    assert oopif.sent[-1] == ("DOM.enable", {})
