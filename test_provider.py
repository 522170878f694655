import asyncio

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from web_observer.core.errors import ConfigurationError, UnsupportedModelError, UnsupportedProviderError
from web_observer.llm.clients import (
    AdapterClient,
    AnthropicClient,
    GoogleClient,
    GoogleVertexClient,
    GroqClient,
    OpenAIClient,
    common_model_kwargs,
)
from web_observer.llm.provider import (
    AdapterSpec,
    ModelGateway,
    NamespacedModel,
    ProviderRegistry,
    StaticModel,
    parse_model_name,
)


def quiet_gateway(**kwargs):
    return ModelGateway(logger=lambda line: None, **kwargs)


def fake_registry():
    return ProviderRegistry({
        "fake": AdapterSpec(
            default=lambda model: FakeListChatModel(responses=[f"default:{model}"]),
            with_key=lambda model, key, url: FakeListChatModel(responses=[f"keyed:{model}:{key}"]),
        ),
        "local": AdapterSpec(default=lambda model: FakeListChatModel(responses=["local"])),
    })


def test_parse_model_name():
    assert parse_model_name("gpt-4o") == StaticModel("gpt-4o")
    assert parse_model_name("openai/gpt-4.1") == NamespacedModel("openai", "gpt-4.1")
    assert parse_model_name("openai/gpt-4.1").name == "openai/gpt-4.1"


def test_namespaced_model_goes_through_adapter():
    gateway = quiet_gateway()
    client = gateway.get_client("openai/gpt-4.1", {"api_key": "sk-test"})
    assert isinstance(client, AdapterClient)
    assert client.model_name == "openai/gpt-4.1"


def test_vertex_without_project_is_rejected():
    with pytest.raises(ConfigurationError):
        quiet_gateway().get_client("google/gemini-1.5-pro", {"vertexai": True})


def test_vertex_without_location_is_rejected():
    with pytest.raises(ConfigurationError):
        quiet_gateway().get_client("google/gemini-1.5-pro", {"vertexai": True, "project": "p"})


def test_vertex_client_delegates_to_google_client():
    client = quiet_gateway().get_client(
        "google/gemini-1.5-pro", {"vertexai": True, "project": "p", "location": "us-central1"})
    assert isinstance(client, GoogleVertexClient)
    assert isinstance(client._delegate, GoogleClient)
    assert (client.project, client.location) == ("p", "us-central1")


def test_google_without_vertex_flag_uses_adapter():
    client = quiet_gateway().get_client("google/gemini-1.5-pro", {"api_key": "k", "project": "p"})
    assert isinstance(client, AdapterClient)


def test_static_names_map_to_vendor_clients():
    gateway = quiet_gateway()
    assert isinstance(gateway.get_client("gpt-4o"), OpenAIClient)
    assert isinstance(gateway.get_client("claude-3-7-sonnet-latest"), AnthropicClient)
    assert isinstance(gateway.get_client("groq-llama-3.3-70b-versatile"), GroqClient)
    assert isinstance(gateway.get_client("gemini-2.0-flash"), GoogleClient)


def test_unknown_static_model():
    with pytest.raises(UnsupportedModelError) as exc:
        quiet_gateway().get_client("gpt-99")
    assert "gpt-4o" in exc.value.supported


def test_unknown_vendor():
    with pytest.raises(UnsupportedProviderError):
        quiet_gateway(registry=fake_registry()).get_client("nope/model")


def test_key_requires_keyed_adapter():
    gateway = quiet_gateway(registry=fake_registry())
    with pytest.raises(UnsupportedProviderError) as exc:
        gateway.get_client("local/model", {"api_key": "secret"})
    assert "fake" in str(exc.value)
    assert isinstance(gateway.get_client("local/model"), AdapterClient)


def test_keyed_and_default_adapters():
    gateway = quiet_gateway(registry=fake_registry())
    messages = [{"role": "user", "content": "hi"}]

    keyed = gateway.get_client("fake/m1", {"api_key": "secret"})
    default = gateway.get_client("fake/m1")

    assert asyncio.run(keyed.create_chat_completion(messages, "r1"))["content"] == "keyed:m1:secret"
    assert asyncio.run(default.create_chat_completion(messages, "r1"))["content"] == "default:m1"


def test_get_model_provider():
    gateway = quiet_gateway()
    assert gateway.get_model_provider("openai/gpt-4.1") == "aisdk"
    assert gateway.get_model_provider("openai/gpt-4.1", using_original_provider=True) is None
    assert gateway.get_model_provider("moonshotai/kimi-k2-instruct") == "groq"
    assert gateway.get_model_provider("gpt-4o") == "openai"
    assert gateway.get_model_provider("mystery") is None


def test_groq_client_strips_prefix():
    client = GroqClient("groq-llama-3.3-70b-versatile", client_options={"api_key": "gsk-test"})
    assert client.chat_model.model_name == "llama-3.3-70b-versatile"


def test_reasoning_models_are_sent_without_temperature():
    gateway = quiet_gateway()
    for name in ("o1", "o3-mini", "o4-mini"):
        model = gateway.get_client(name, {"api_key": "sk-test"}).chat_model
        payload = model._get_request_payload([("user", "hi")])
        assert payload.get("temperature") is None

    gpt = gateway.get_client("gpt-4o", {"api_key": "sk-test"}).chat_model
    assert gpt._get_request_payload([("user", "hi")])["temperature"] == 0.1


def test_temperature_kwargs():
    assert "temperature" not in common_model_kwargs({"temperature": 0.5}, "o3")
    assert "temperature" not in common_model_kwargs({}, "openai/o1-mini")
    assert common_model_kwargs({"temperature": 0.5}, "gpt-4.1")["temperature"] == 0.5
