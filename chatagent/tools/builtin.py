"""
Built-in tools available to every conversation: web search, image
generation and the current time.
"""
import json
from datetime import datetime, timezone
from typing import Annotated, Any

import httpx
from langchain_core.tools import InjectedToolArg

from chatagent.config import get_settings
from chatagent.errors import ToolAuthenticationError
from chatagent.tools.registry import ToolDescriptor, registry

WEB_SEARCH_TOOL = "web_search"
IMAGE_GENERATION_TOOL = "generate_image"
CURRENT_TIME_TOOL = "get_current_time"

# Always offered first on general queries
CORE_TOOL_NAMES = (WEB_SEARCH_TOOL, IMAGE_GENERATION_TOOL, CURRENT_TIME_TOOL)


def _inject_image_key(args: dict, context: Any) -> dict:
    return {**args, "api_key": getattr(context, "image_api_key", None)}


@registry.register(category="search")
async def web_search(query: str) -> str:
    """Search the web for current information, news and facts.

    Returns a JSON list of results, each with title, link and snippet.
    """
    settings = get_settings()
    async with httpx.AsyncClient(timeout=20.0) as client:
        response = await client.get(
            f"{settings.SEARXNG_API_URL.rstrip('/')}/search",
            params={"q": query, "format": "json"},
        )
        response.raise_for_status()

    results = response.json().get("results", [])[: settings.WEB_SEARCH_MAX_RESULTS]
    return json.dumps([
        {
            "title": r.get("title", ""),
            "link": r.get("url", ""),
            "snippet": r.get("content", ""),
        }
        for r in results
    ])


@registry.register(category="image", prepare=_inject_image_key)
async def generate_image(
    prompt: str,
    api_key: Annotated[str | None, InjectedToolArg] = None,
) -> str:
    """Generate an image from a detailed text description.

    Returns the URL of the generated image.
    """
    if not api_key:
        raise ToolAuthenticationError("generate_image", "Authentication required: no OpenAI API key for image generation")

    settings = get_settings()
    async with httpx.AsyncClient(timeout=120.0) as client:
        response = await client.post(
            settings.OPENAI_IMAGE_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "model": settings.IMAGE_MODEL,
                "prompt": prompt,
                "n": 1,
                "size": settings.IMAGE_SIZE,
            },
        )
        response.raise_for_status()

    data = response.json().get("data") or []
    if not data or not data[0].get("url"):
        raise ValueError("Image API returned no image")
    return data[0]["url"]


@registry.register(category="utility")
async def get_current_time() -> str:
    """Get the current date and time (UTC, ISO 8601)."""
    return datetime.now(timezone.utc).isoformat()


def get_core_tools() -> list[ToolDescriptor]:
    """Descriptors for the core tools, in CORE_TOOL_NAMES order."""
    return [registry.get(name) for name in CORE_TOOL_NAMES]
