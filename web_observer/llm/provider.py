"""
Model gateway.

Resolves a model identifier to a client. Bare names ("gpt-4o") go through a
static table to one vendor client each; namespaced names ("openai/gpt-4.1")
go through the multi-vendor adapter registry, except Google models flagged for
Vertex AI, which get the dedicated Vertex client.
"""

import os
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Type, Union

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_openai import AzureChatOpenAI, ChatOpenAI
from langchain_anthropic import ChatAnthropic
from langchain_google_genai import ChatGoogleGenerativeAI

from ..core.errors import UnsupportedModelError, UnsupportedProviderError
from ..core.log import Logger, aux, default_logger, log_line
from ..core.types import ClientOptions
from .cache import ResponseCache
from .clients import (
    AdapterClient,
    AnthropicClient,
    CerebrasClient,
    GoogleClient,
    GoogleVertexClient,
    GroqClient,
    LLMClient,
    OpenAIClient,
)

ADAPTER_FAMILY = "aisdk"
VERTEX_VENDORS = {"google"}

MODEL_TO_PROVIDER: Dict[str, str] = {
    "gpt-4.1": "openai",
    "gpt-4.1-mini": "openai",
    "gpt-4.1-nano": "openai",
    "o4-mini": "openai",
    "o3": "openai",
    "o3-mini": "openai",
    "o1": "openai",
    "o1-mini": "openai",
    "gpt-4o": "openai",
    "gpt-4o-mini": "openai",
    "gpt-4o-2024-08-06": "openai",
    "gpt-4.5-preview": "openai",
    "o1-preview": "openai",
    "claude-3-5-sonnet-latest": "anthropic",
    "claude-3-5-sonnet-20240620": "anthropic",
    "claude-3-5-sonnet-20241022": "anthropic",
    "claude-3-7-sonnet-20250219": "anthropic",
    "claude-3-7-sonnet-latest": "anthropic",
    "cerebras-llama-3.3-70b": "cerebras",
    "cerebras-llama-3.1-8b": "cerebras",
    "groq-llama-3.3-70b-versatile": "groq",
    "groq-llama-3.3-70b-specdec": "groq",
    "moonshotai/kimi-k2-instruct": "groq",
    "gemini-1.5-flash": "google",
    "gemini-1.5-pro": "google",
    "gemini-1.5-flash-8b": "google",
    "gemini-2.0-flash-lite": "google",
    "gemini-2.0-flash": "google",
    "gemini-2.5-flash-preview-04-17": "google",
    "gemini-2.5-flash": "google",
    "gemini-2.5-pro-preview-03-25": "google",
    "gemini-2.5-pro": "google",
}

VENDOR_CLIENTS: Dict[str, Type[LLMClient]] = {
    "openai": OpenAIClient,
    "anthropic": AnthropicClient,
    "cerebras": CerebrasClient,
    "groq": GroqClient,
    "google": GoogleClient,
}


@dataclass(frozen=True)
class StaticModel:
    name: str


@dataclass(frozen=True)
class NamespacedModel:
    vendor: str
    model: str

    @property
    def name(self) -> str:
        return f"{self.vendor}/{self.model}"


ModelSpec = Union[StaticModel, NamespacedModel]


def parse_model_name(identifier: str) -> ModelSpec:
    if "/" in identifier:
        vendor, model = identifier.split("/", 1)
        return NamespacedModel(vendor, model)
    return StaticModel(identifier)


DefaultAdapter = Callable[[str], BaseChatModel]
KeyedAdapter = Callable[[str, str, Optional[str]], BaseChatModel]


@dataclass(frozen=True)
class AdapterSpec:
    default: DefaultAdapter
    with_key: Optional[KeyedAdapter] = None


def _openai_compatible(base_url: str, env_key: str) -> AdapterSpec:
    return AdapterSpec(
        default=lambda model: ChatOpenAI(model=model, api_key=os.getenv(env_key), base_url=base_url),
        with_key=lambda model, key, url: ChatOpenAI(model=model, api_key=key, base_url=url or base_url),
    )


def _optional(**kwargs) -> dict:
    return {k: v for k, v in kwargs.items() if v}


def build_default_registry() -> "ProviderRegistry":
    """Adapters for every vendor reachable through "vendor/model" identifiers."""
    return ProviderRegistry({
        "openai": AdapterSpec(
            default=lambda model: ChatOpenAI(model=model),
            with_key=lambda model, key, url: ChatOpenAI(model=model, **_optional(api_key=key, base_url=url)),
        ),
        "anthropic": AdapterSpec(
            default=lambda model: ChatAnthropic(model=model),
            with_key=lambda model, key, url: ChatAnthropic(model=model, **_optional(api_key=key, base_url=url)),
        ),
        "google": AdapterSpec(
            default=lambda model: ChatGoogleGenerativeAI(model=model),
            with_key=lambda model, key, url: ChatGoogleGenerativeAI(model=model, google_api_key=key),
        ),
        "azure": AdapterSpec(
            default=lambda model: AzureChatOpenAI(azure_deployment=model),
            with_key=lambda model, key, url: AzureChatOpenAI(
                azure_deployment=model, **_optional(api_key=key, azure_endpoint=url)),
        ),
        "xai": _openai_compatible("https://api.x.ai/v1", "XAI_API_KEY"),
        "groq": _openai_compatible("https://api.groq.com/openai/v1", "GROQ_API_KEY"),
        "cerebras": _openai_compatible("https://api.cerebras.ai/v1", "CEREBRAS_API_KEY"),
        "togetherai": _openai_compatible("https://api.together.xyz/v1", "TOGETHER_API_KEY"),
        "mistral": _openai_compatible("https://api.mistral.ai/v1", "MISTRAL_API_KEY"),
        "deepseek": _openai_compatible("https://api.deepseek.com/v1", "DEEPSEEK_API_KEY"),
        "perplexity": _openai_compatible("https://api.perplexity.ai", "PERPLEXITY_API_KEY"),
        # local server, nothing to authenticate
        "ollama": AdapterSpec(
            default=lambda model: ChatOpenAI(model=model, api_key="ollama", base_url="http://localhost:11434/v1"),
        ),
    })


class ProviderRegistry:
    """Explicit vendor -> adapter table handed to every gateway that dispatches."""

    def __init__(self, adapters: Dict[str, AdapterSpec]):
        self.adapters = dict(adapters)

    def __contains__(self, vendor: str) -> bool:
        return vendor in self.adapters

    @property
    def vendors(self):
        return list(self.adapters)

    @property
    def keyed_vendors(self):
        return [v for v, spec in self.adapters.items() if spec.with_key]

    def language_model(self, vendor: str, model: str, api_key: Optional[str] = None,
                       base_url: Optional[str] = None) -> Callable[[], BaseChatModel]:
        """Return a factory for the vendor's chat model, failing fast on unknown vendors."""
        spec = self.adapters.get(vendor)
        if api_key:
            if spec is None or spec.with_key is None:
                raise UnsupportedProviderError(vendor, self.keyed_vendors)
            keyed = spec.with_key
            return lambda: keyed(model, api_key, base_url)
        if spec is None:
            raise UnsupportedProviderError(vendor, self.vendors)
        default = spec.default
        return lambda: default(model)


def is_vertex_request(client_options: Optional[ClientOptions]) -> bool:
    return bool(client_options and client_options.get("vertexai"))


def get_model_provider(model_name: str, using_original_provider: bool,
                       registry: ProviderRegistry) -> Optional[str]:
    """Report which dispatch family a model identifier would use, without building a client."""
    spec = parse_model_name(model_name)
    if isinstance(spec, NamespacedModel) and not using_original_provider and spec.vendor in registry:
        return ADAPTER_FAMILY
    return MODEL_TO_PROVIDER.get(model_name)


class ModelGateway:
    def __init__(self, logger: Logger = default_logger, enable_caching: bool = False,
                 registry: Optional[ProviderRegistry] = None):
        self.logger = logger
        self.enable_caching = enable_caching
        self.cache = ResponseCache(logger) if enable_caching else None
        self.registry = registry or build_default_registry()

    def clean_request_cache(self, request_id: str) -> None:
        if self.cache is None:
            return
        self.logger(log_line("llm_cache", "cleaning up cache", 1, aux(requestId=request_id)))
        self.cache.delete_for_request(request_id)

    def get_model_provider(self, model_name: str, using_original_provider: bool = False) -> Optional[str]:
        return get_model_provider(model_name, using_original_provider, self.registry)

    def get_client(self, model_name: str, client_options: Optional[ClientOptions] = None) -> LLMClient:
        spec = parse_model_name(model_name)
        options: ClientOptions = client_options or {}

        if isinstance(spec, NamespacedModel):
            if spec.vendor in VERTEX_VENDORS and is_vertex_request(options):
                return GoogleVertexClient(model_name, self.logger, self.cache, options)

            factory = self.registry.language_model(
                spec.vendor, spec.model, options.get("api_key"), options.get("base_url"))
            return AdapterClient(model_name, self.logger, self.cache, options, chat_model_factory=factory)

        vendor = MODEL_TO_PROVIDER.get(spec.name)
        if vendor is None:
            raise UnsupportedModelError(MODEL_TO_PROVIDER.keys(), model_name)
        client_cls = VENDOR_CLIENTS.get(vendor)
        if client_cls is None:
            raise UnsupportedProviderError(vendor, VENDOR_CLIENTS.keys())
        return client_cls(spec.name, self.logger, self.cache, options)
