"""
Configuration management for the chat agent service.
"""
import os
from functools import lru_cache
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Supabase
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")

    # Provider keys (fallbacks when the request does not carry its own key)
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
    GOOGLE_API_KEY: str = os.getenv("GOOGLE_API_KEY", "")
    OPENROUTER_API_KEY: str = os.getenv("OPENROUTER_API_KEY", "")

    OPENROUTER_API_URL: str = os.getenv("OPENROUTER_API_URL", "https://openrouter.ai/api/v1")
    OPENROUTER_REFERER: str = os.getenv("OPENROUTER_REFERER", "http://localhost:3000")
    OPENROUTER_TITLE: str = os.getenv("OPENROUTER_TITLE", "Chat Agent")

    DEFAULT_TEMPERATURE: float = float(os.getenv("DEFAULT_TEMPERATURE", "1.0"))

    # Anthropic max_tokens by model, falls back to "default"
    ANTHROPIC_MAX_TOKENS: dict[str, int] = {
        "default": 4096,
        "claude-3-5-haiku-20241022": 8192,
        "claude-3-7-sonnet-20250219": 64000,
        "claude-sonnet-4-20250514": 64000,
        "claude-opus-4-20250514": 32000,
    }

    # Built-in tools
    SEARXNG_API_URL: str = os.getenv("SEARXNG_API_URL", "http://localhost:8080")
    WEB_SEARCH_MAX_RESULTS: int = 8
    OPENAI_IMAGE_URL: str = "https://api.openai.com/v1/images/generations"
    IMAGE_MODEL: str = os.getenv("IMAGE_MODEL", "dall-e-3")
    IMAGE_SIZE: str = "1024x1024"

    # MCP connector server
    MCP_SERVER_URL: str = os.getenv("MCP_SERVER_URL", "http://localhost:3006")
    MCP_TOOL_TIMEOUT: float = float(os.getenv("MCP_TOOL_TIMEOUT", "90"))
    MCP_DISCOVERY_TIMEOUT: float = float(os.getenv("MCP_DISCOVERY_TIMEOUT", "30"))
    MCP_DISCOVERY_ATTEMPTS: int = 3
    MCP_CACHE_TTL: float = 5 * 60

    # Tool selection
    MAX_TOOLS: int = int(os.getenv("MAX_TOOLS", "30"))

    # Agent loop
    MAX_AGENT_ITERATIONS: int = int(os.getenv("MAX_AGENT_ITERATIONS", "10"))

    # Document retrieval
    EMBEDDING_MODEL: str = "all-MiniLM-L6-v2"
    RAG_MAX_CONTEXT_CHARS: int = 3000
    RAG_RESULT_LIMIT: int = 18
    RAG_SCORE_THRESHOLD: float = 0.15

    # Conversation history
    HISTORY_TURNS: int = 5

    # API settings
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))

    # CORS origins for frontend
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    def provider_key(self, provider: str) -> str:
        """Fallback API key for a provider code (OPEN_AI, ANTHROPIC, ...)."""
        if provider == "OPEN_AI":
            return self.OPENAI_API_KEY
        if provider == "ANTHROPIC":
            return self.ANTHROPIC_API_KEY
        if provider == "GEMINI":
            return self.GOOGLE_API_KEY
        return self.OPENROUTER_API_KEY

    def anthropic_max_tokens(self, model_name: str) -> int:
        return self.ANTHROPIC_MAX_TOKENS.get(model_name, self.ANTHROPIC_MAX_TOKENS["default"])

    def validate(self) -> list[str]:
        """Validate required settings. Returns list of missing keys."""
        missing = []
        if not self.SUPABASE_URL:
            missing.append("SUPABASE_URL")
        if not self.SUPABASE_KEY:
            missing.append("SUPABASE_KEY")
        return missing


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
