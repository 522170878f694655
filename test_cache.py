import asyncio

from langchain_core.language_models.fake_chat_models import FakeListChatModel

from web_observer.llm.cache import CacheEntry, ResponseCache, make_cache_key
from web_observer.llm.clients import AdapterClient
from web_observer.llm.provider import ModelGateway

PAYLOAD = {"model": "m", "messages": [{"role": "user", "content": "hi"}]}


def test_same_payload_different_requests_get_different_keys():
    a = make_cache_key("req-a", PAYLOAD)
    b = make_cache_key("req-b", PAYLOAD)
    assert a.digest == b.digest
    assert a != b


def test_key_ignores_dict_ordering():
    reordered = {"messages": PAYLOAD["messages"], "model": "m"}
    assert make_cache_key("r", PAYLOAD) == make_cache_key("r", reordered)


def test_delete_for_request_only_touches_that_request():
    cache = ResponseCache(logger=lambda line: None)
    for request_id in ("req-a", "req-b", "req-c"):
        cache.set(make_cache_key(request_id, PAYLOAD), CacheEntry({"content": request_id}))
    cache.set(make_cache_key("req-a", {"other": True}), CacheEntry({"content": "a2"}))

    assert cache.delete_for_request("req-a") == 2

    assert cache.get(make_cache_key("req-a", PAYLOAD)) is None
    assert cache.get(make_cache_key("req-b", PAYLOAD)).response == {"content": "req-b"}
    assert len(cache) == 2
    assert cache.delete_for_request("missing") == 0


def test_client_serves_repeat_calls_from_cache():
    cache = ResponseCache(logger=lambda line: None)
    model = FakeListChatModel(responses=["first", "second"])
    client = AdapterClient("fake/m", logger=lambda line: None, cache=cache,
                           chat_model_factory=lambda: model)
    messages = [{"role": "user", "content": "hi"}]

    first = asyncio.run(client.create_chat_completion(messages, "req-1"))
    again = asyncio.run(client.create_chat_completion(messages, "req-1"))
    other = asyncio.run(client.create_chat_completion(messages, "req-2"))

    assert first["content"] == again["content"] == "first"
    assert other["content"] == "second"


def test_gateway_cleanup():
    gateway = ModelGateway(logger=lambda line: None, enable_caching=True)
    gateway.cache.set(make_cache_key("req-1", PAYLOAD), CacheEntry({"content": "x"}))
    gateway.cache.set(make_cache_key("req-2", PAYLOAD), CacheEntry({"content": "y"}))

    gateway.clean_request_cache("req-1")

    assert len(gateway.cache) == 1
    ModelGateway(logger=lambda line: None).clean_request_cache("req-1")
