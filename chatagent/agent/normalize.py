"""
Provider normalization.

Builds the message sequence a provider accepts from the stored history,
the messages produced this turn and the active agent/document context,
and encodes attached images the way each provider expects them.
"""
import base64
from typing import Awaitable, Callable

import httpx
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from chatagent.agent.prompts import AGENT_DOCUMENT_CONTEXT, CUSTOM_INSTRUCTION_PREFIX
from chatagent.agent.providers import ImageEncoding, Provider, SystemPolicy, get_profile
from chatagent.logging import log_warning

IMAGE_FETCH_TIMEOUT = 30.0

ImageFetcher = Callable[[str], Awaitable[tuple[str, str]]]


def message_text(content) -> str:
    """Plain text of a message content, which may be a list of parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return str(content or "")


def build_agent_system_content(system_prompt: str | None, rag_context: str | None = None) -> str:
    content = system_prompt or ""
    if rag_context:
        content += AGENT_DOCUMENT_CONTEXT.format(context=rag_context)
    return content


def normalize_messages(
    history: list[BaseMessage],
    turn_messages: list[BaseMessage],
    provider: Provider,
    agent_system_prompt: str | None = None,
    custom_instruction: str | None = None,
    rag_context: str | None = None,
) -> list[BaseMessage]:
    """
    Build the provider-correct message list for one model call.

    Args:
        history: Prior conversation messages from the store
        turn_messages: Messages produced during this request (user message first)
        provider: Target provider
        agent_system_prompt: System prompt of the active agent, None without an agent
        custom_instruction: End-user instruction applied to every turn
        rag_context: Document context for agent flows

    Returns:
        History, system content and turn messages in the order the provider accepts
    """
    profile = get_profile(provider)
    context = list(history)
    agent_content = None
    if agent_system_prompt is not None:
        agent_content = build_agent_system_content(agent_system_prompt, rag_context)

    folded = None
    if profile.system_policy is SystemPolicy.SINGLE:
        system_texts = [message_text(m.content) for m in context if isinstance(m, SystemMessage)]
        context = [m for m in context if not isinstance(m, SystemMessage)]

        blocks = [text for text in system_texts if text]
        if agent_content:
            blocks.insert(0, agent_content)
        if custom_instruction:
            if profile.folds_extra_instructions and blocks:
                folded = HumanMessage(content=CUSTOM_INSTRUCTION_PREFIX.format(instruction=custom_instruction))
            else:
                blocks.append(custom_instruction)
        if blocks:
            context.insert(0, SystemMessage(content="\n\n".join(blocks)))
    else:
        if agent_content:
            if context and isinstance(context[0], SystemMessage):
                context[0] = SystemMessage(content=agent_content)
            else:
                context.insert(0, SystemMessage(content=agent_content))
        if custom_instruction:
            context.insert(0, SystemMessage(content=custom_instruction))

    if folded is not None:
        context.append(folded)
    context.extend(turn_messages)
    return context


async def fetch_image_as_base64(url: str) -> tuple[str, str]:
    """Download an image, returning (base64 data, mime type)."""
    async with httpx.AsyncClient(timeout=IMAGE_FETCH_TIMEOUT, follow_redirects=True) as client:
        response = await client.get(url)
        response.raise_for_status()
    mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
    return base64.b64encode(response.content).decode("ascii"), mime_type or "image/jpeg"


async def _image_part(url: str, encoding: ImageEncoding, fetch_image: ImageFetcher) -> dict:
    if encoding is ImageEncoding.URL:
        return {"type": "image_url", "image_url": {"url": url}}

    data, mime_type = await fetch_image(url)
    if encoding is ImageEncoding.ANTHROPIC_BASE64:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": mime_type, "data": data},
        }
    return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{data}"}}


async def build_user_message(
    query: str,
    image_urls: list[str] | None,
    provider: Provider,
    fetch_image: ImageFetcher = fetch_image_as_base64,
) -> HumanMessage:
    """The user's message, with image parts when the provider can see them."""
    if not image_urls:
        return HumanMessage(content=query)

    profile = get_profile(provider)
    if not profile.supports_vision or profile.image_encoding is None:
        log_warning(f"{provider.value} does not accept images, sending text only")
        return HumanMessage(content=query)

    parts = []
    for url in image_urls:
        try:
            parts.append(await _image_part(url, profile.image_encoding, fetch_image))
        except Exception as e:
            log_warning(f"Dropping image {url}: {e}")

    if not parts:
        return HumanMessage(content=query)
    return HumanMessage(content=[{"type": "text", "text": query}, *parts])
