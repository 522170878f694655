"""
Model clients.

Every client exposes one operation, create_chat_completion, which takes
role/content messages and returns the model text plus usage counters.
Vendor variants only differ in how they build their langchain chat model.
"""

import re
import time
from typing import Any, Callable, Dict, List, Optional, TypedDict

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_google_vertexai import ChatVertexAI
from langchain_openai import ChatOpenAI

from ..core.config import DEFAULT_MAX_RETRIES, DEFAULT_TEMPERATURE, DEFAULT_TIMEOUT_S, get_env_var
from ..core.errors import ConfigurationError
from ..core.log import Logger, aux, default_logger, log_line
from ..core.types import ClientOptions
from .cache import CacheEntry, ResponseCache, make_cache_key

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
CEREBRAS_BASE_URL = "https://api.cerebras.ai/v1"

ChatModelFactory = Callable[[], BaseChatModel]


class ChatMessage(TypedDict):
    role: str
    content: str


class Usage(TypedDict):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletion(TypedDict):
    model: str
    content: str
    usage: Usage
    inference_time_ms: int


_MESSAGE_TYPES = {"system": SystemMessage, "user": HumanMessage, "assistant": AIMessage}


def to_langchain_messages(messages: List[ChatMessage]) -> List[BaseMessage]:
    return [_MESSAGE_TYPES[m["role"]](content=m["content"]) for m in messages]


def message_text(message: BaseMessage) -> str:
    """Flatten string or block-list message content into one string."""
    content = message.content
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
            elif isinstance(block, str):
                parts.append(block)
        return "\n".join(parts).strip()
    return str(content)


REASONING_MODEL = re.compile(r"^(?:[\w-]+/)?o\d")


def is_reasoning_model(model_name: str) -> bool:
    return bool(REASONING_MODEL.match(model_name))


def model_temperature(model_name: str, options: ClientOptions) -> Optional[float]:
    """Sampling temperature to send; None for o-series models, which only accept the default."""
    if is_reasoning_model(model_name):
        return None
    return options.get("temperature", DEFAULT_TEMPERATURE)


def common_model_kwargs(options: ClientOptions, model_name: str = "") -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        "timeout": options.get("timeout", DEFAULT_TIMEOUT_S),
        "max_retries": options.get("max_retries", DEFAULT_MAX_RETRIES),
    }
    temperature = model_temperature(model_name, options)
    if temperature is not None:
        kwargs["temperature"] = temperature
    return kwargs


class LLMClient:
    """Base client: request shaping, caching and usage accounting around a chat model."""

    type = "generic"

    def __init__(
        self,
        model_name: str,
        logger: Logger = default_logger,
        cache: Optional[ResponseCache] = None,
        client_options: Optional[ClientOptions] = None,
        chat_model_factory: Optional[ChatModelFactory] = None,
    ):
        self.model_name = model_name
        self.logger = logger
        self.cache = cache
        self.client_options: ClientOptions = dict(client_options or {})  # type: ignore[assignment]
        self._chat_model_factory = chat_model_factory
        self._chat_model: Optional[BaseChatModel] = None

    @property
    def enable_caching(self) -> bool:
        return self.cache is not None

    def _build_chat_model(self) -> BaseChatModel:
        if self._chat_model_factory is None:
            raise ConfigurationError(f"{type(self).__name__} has no chat model factory")
        return self._chat_model_factory()

    @property
    def chat_model(self) -> BaseChatModel:
        # built lazily so resolving a client never touches credentials or the network
        if self._chat_model is None:
            self._chat_model = self._build_chat_model()
        return self._chat_model

    async def create_chat_completion(self, messages: List[ChatMessage], request_id: str) -> ChatCompletion:
        payload = {
            "model": self.model_name,
            "messages": messages,
            "temperature": model_temperature(self.model_name, self.client_options),
        }
        key = make_cache_key(request_id, payload)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached.response  # type: ignore[return-value]

        self.logger(log_line("llm", "creating chat completion", 2,
                             aux(model=self.model_name, requestId=request_id)))
        start = time.monotonic()
        result = await self.chat_model.ainvoke(to_langchain_messages(messages))
        elapsed_ms = int((time.monotonic() - start) * 1000)

        usage_meta = getattr(result, "usage_metadata", None) or {}
        prompt_tokens = int(usage_meta.get("input_tokens", 0))
        completion_tokens = int(usage_meta.get("output_tokens", 0))
        completion: ChatCompletion = {
            "model": self.model_name,
            "content": message_text(result),
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
            "inference_time_ms": elapsed_ms,
        }

        if self.cache is not None:
            self.cache.set(key, CacheEntry(completion, prompt_tokens, completion_tokens, elapsed_ms))
        return completion


class OpenAIClient(LLMClient):
    type = "openai"

    def _build_chat_model(self) -> BaseChatModel:
        kwargs = common_model_kwargs(self.client_options, self.model_name)
        if self.client_options.get("api_key"):
            kwargs["api_key"] = self.client_options["api_key"]
        if self.client_options.get("base_url"):
            kwargs["base_url"] = self.client_options["base_url"]
        return ChatOpenAI(model=self.model_name, **kwargs)


class AnthropicClient(LLMClient):
    type = "anthropic"

    def _build_chat_model(self) -> BaseChatModel:
        kwargs = common_model_kwargs(self.client_options, self.model_name)
        if self.client_options.get("api_key"):
            kwargs["api_key"] = self.client_options["api_key"]
        if self.client_options.get("base_url"):
            kwargs["base_url"] = self.client_options["base_url"]
        return ChatAnthropic(model=self.model_name, **kwargs)


class GoogleClient(LLMClient):
    type = "google"

    def _build_chat_model(self) -> BaseChatModel:
        if self._chat_model_factory is not None:
            return self._chat_model_factory()
        kwargs = common_model_kwargs(self.client_options, self.model_name)
        if self.client_options.get("api_key"):
            kwargs["google_api_key"] = self.client_options["api_key"]
        return ChatGoogleGenerativeAI(model=self.model_name.split("/", 1)[-1], **kwargs)


class _OpenAICompatibleClient(LLMClient):
    """Vendors that serve the OpenAI wire format under their own base url."""

    base_url = ""
    env_key = ""
    prefix = ""

    def _build_chat_model(self) -> BaseChatModel:
        kwargs = common_model_kwargs(self.client_options, self.model_name)
        api_key = self.client_options.get("api_key") or get_env_var(self.env_key)
        model = self.model_name[len(self.prefix):] if self.model_name.startswith(self.prefix) else self.model_name
        return ChatOpenAI(
            model=model,
            api_key=api_key,
            base_url=self.client_options.get("base_url") or self.base_url,
            **kwargs,
        )


class GroqClient(_OpenAICompatibleClient):
    type = "groq"
    base_url = GROQ_BASE_URL
    env_key = "GROQ_API_KEY"
    prefix = "groq-"


class CerebrasClient(_OpenAICompatibleClient):
    type = "cerebras"
    base_url = CEREBRAS_BASE_URL
    env_key = "CEREBRAS_API_KEY"
    prefix = "cerebras-"


class AdapterClient(LLMClient):
    """Client around a chat model produced by the multi-vendor adapter registry."""

    type = "adapter"


class GoogleVertexClient(LLMClient):
    """Google models on Vertex AI.

    Request shaping, caching and accounting are delegated to a GoogleClient
    that is handed a Vertex-backed chat model; only configuration lives here.
    """

    type = "google"

    def __init__(
        self,
        model_name: str,
        logger: Logger = default_logger,
        cache: Optional[ResponseCache] = None,
        client_options: Optional[ClientOptions] = None,
    ):
        options = client_options or {}
        if not options.get("vertexai"):
            raise ConfigurationError("GoogleVertexClient requires vertexai option to be true")
        if not options.get("project"):
            raise ConfigurationError("GoogleVertexClient requires project configuration")
        if not options.get("location"):
            raise ConfigurationError("GoogleVertexClient requires location configuration")

        super().__init__(model_name, logger, cache, {**options, "vertexai": True})
        self._delegate = GoogleClient(
            model_name, logger, cache, self.client_options, chat_model_factory=self._build_chat_model)

    @property
    def project(self) -> str:
        return self.client_options["project"]

    @property
    def location(self) -> str:
        return self.client_options["location"]

    def _build_chat_model(self) -> BaseChatModel:
        return ChatVertexAI(
            model=self.model_name.split("/", 1)[-1],
            project=self.project,
            location=self.location,
            **common_model_kwargs(self.client_options, self.model_name),
        )

    @property
    def chat_model(self) -> BaseChatModel:
        return self._delegate.chat_model

    async def create_chat_completion(self, messages: List[ChatMessage], request_id: str) -> ChatCompletion:
        return await self._delegate.create_chat_completion(messages, request_id)
