"""
Model providers.

Maps provider codes to a `ProviderProfile` describing how the provider wants
its messages shaped, and builds the LangChain chat model for a request.
"""
import hashlib
from dataclasses import dataclass
from enum import Enum

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from chatagent.cache import KeyedCache
from chatagent.config import Settings, get_settings
from chatagent.errors import ConfigurationError


class Provider(str, Enum):
    OPEN_AI = "OPEN_AI"
    ANTHROPIC = "ANTHROPIC"
    GEMINI = "GEMINI"
    DEEPSEEK = "DEEPSEEK"
    LLAMA4 = "LLAMA4"
    GROK = "GROK"
    QWEN = "QWEN"


class SystemPolicy(str, Enum):
    SINGLE = "single"  # at most one system message, at index 0
    MULTI = "multi"


class ImageEncoding(str, Enum):
    URL = "url"
    ANTHROPIC_BASE64 = "anthropic_base64"
    DATA_URL = "data_url"


@dataclass(frozen=True)
class ProviderProfile:
    provider: Provider
    system_policy: SystemPolicy = SystemPolicy.MULTI
    folds_extra_instructions: bool = False
    supports_vision: bool = False
    image_encoding: ImageEncoding | None = None
    supports_tools: bool = True
    openrouter: bool = False


PROVIDER_PROFILES = {
    Provider.OPEN_AI: ProviderProfile(
        Provider.OPEN_AI, supports_vision=True, image_encoding=ImageEncoding.URL,
    ),
    Provider.ANTHROPIC: ProviderProfile(
        Provider.ANTHROPIC,
        system_policy=SystemPolicy.SINGLE,
        folds_extra_instructions=True,
        supports_vision=True,
        image_encoding=ImageEncoding.ANTHROPIC_BASE64,
    ),
    Provider.GEMINI: ProviderProfile(
        Provider.GEMINI,
        system_policy=SystemPolicy.SINGLE,
        supports_vision=True,
        image_encoding=ImageEncoding.DATA_URL,
    ),
    Provider.DEEPSEEK: ProviderProfile(Provider.DEEPSEEK, supports_tools=False, openrouter=True),
    Provider.LLAMA4: ProviderProfile(
        Provider.LLAMA4, supports_vision=True, image_encoding=ImageEncoding.URL, openrouter=True,
    ),
    Provider.GROK: ProviderProfile(Provider.GROK, openrouter=True),
    Provider.QWEN: ProviderProfile(Provider.QWEN, supports_tools=False, openrouter=True),
}

PROVIDER_ALIASES = {
    "open_ai": Provider.OPEN_AI,
    "openai": Provider.OPEN_AI,
    "anthropic": Provider.ANTHROPIC,
    "claude": Provider.ANTHROPIC,
    "gemini": Provider.GEMINI,
    "google": Provider.GEMINI,
    "deepseek": Provider.DEEPSEEK,
    "llama4": Provider.LLAMA4,
    "llama": Provider.LLAMA4,
    "grok": Provider.GROK,
    "qwen": Provider.QWEN,
}

# Chat-only models that reject tool definitions
NO_TOOL_MODELS = ("chatgpt-4o-latest", "gpt-5-chat-latest")

_model_cache = KeyedCache()


def map_provider_code(code: str | None) -> Provider:
    """Resolve a provider code like "OPEN_AI", "openai" or "anthropic-claude"."""
    if not code:
        return Provider.OPEN_AI
    lowered = str(code).strip().lower()
    if lowered in PROVIDER_ALIASES:
        return PROVIDER_ALIASES[lowered]
    for alias, provider in PROVIDER_ALIASES.items():
        if alias in lowered or lowered in alias:
            return provider
    raise ConfigurationError(f"Unknown provider: {code}")


def infer_provider_from_model(model_name: str) -> Provider:
    """Guess the provider of an agent's response model from its name."""
    name = (model_name or "").lower()
    if "gemini" in name:
        return Provider.GEMINI
    if "claude" in name:
        return Provider.ANTHROPIC
    if "gpt" in name or "o1" in name or "o3" in name:
        return Provider.OPEN_AI
    if "deepseek" in name:
        return Provider.DEEPSEEK
    if "llama" in name:
        return Provider.LLAMA4
    if "grok" in name:
        return Provider.GROK
    if "qwen" in name:
        return Provider.QWEN
    return Provider.OPEN_AI


def get_profile(provider: Provider) -> ProviderProfile:
    return PROVIDER_PROFILES[provider]


def model_supports_tools(provider: Provider, model_name: str) -> bool:
    if not get_profile(provider).supports_tools:
        return False
    name = (model_name or "").lower()
    return not any(blocked in name for blocked in NO_TOOL_MODELS)


def build_chat_model(
    provider: Provider,
    model_name: str,
    api_key: str | None,
    temperature: float | None = None,
    settings: Settings | None = None,
) -> BaseChatModel:
    """Construct the streaming chat model for a provider."""
    if not api_key:
        raise ConfigurationError("API key is required but not provided")

    settings = settings or get_settings()
    temperature = settings.DEFAULT_TEMPERATURE if temperature is None else temperature
    profile = get_profile(provider)

    if provider is Provider.ANTHROPIC:
        return ChatAnthropic(
            model=model_name,
            api_key=api_key,
            temperature=temperature,
            max_tokens=settings.anthropic_max_tokens(model_name),
            streaming=True,
        )
    if provider is Provider.GEMINI:
        return ChatGoogleGenerativeAI(
            model=model_name,
            google_api_key=api_key,
            temperature=temperature,
        )
    if profile.openrouter:
        return ChatOpenAI(
            model=model_name,
            api_key=api_key,
            base_url=settings.OPENROUTER_API_URL,
            temperature=temperature,
            streaming=True,
            stream_usage=True,
            default_headers={
                "HTTP-Referer": settings.OPENROUTER_REFERER,
                "X-Title": settings.OPENROUTER_TITLE,
            },
        )
    return ChatOpenAI(
        model=model_name,
        api_key=api_key,
        temperature=temperature,
        streaming=True,
        stream_usage=True,
    )


def get_chat_model(
    provider: Provider,
    model_name: str,
    api_key: str | None,
    needs_tools: bool,
    temperature: float | None = None,
    cache: KeyedCache | None = None,
    builder=build_chat_model,
) -> BaseChatModel:
    """
    Return a chat model, reusing tool-free instances.

    Models that will have tools bound are built fresh per request. The cache
    key includes a fingerprint of the API key so users never share a client.
    """
    if needs_tools:
        return builder(provider, model_name, api_key, temperature)

    cache = cache if cache is not None else _model_cache
    fingerprint = hashlib.sha256((api_key or "").encode()).hexdigest()[:16]
    key = (provider.value, model_name, needs_tools, temperature, fingerprint)
    return cache.get_or_create(key, lambda: builder(provider, model_name, api_key, temperature))


def bind_model_tools(model: BaseChatModel, tool_specs: list[dict]) -> BaseChatModel:
    """Bind tool specs to a model; no specs means the model is used as is."""
    if not tool_specs:
        return model
    return model.bind_tools(tool_specs)
