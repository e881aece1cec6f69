"""
Streaming session manager.

Prepares one chat turn (agent, model, tools, documents, user message),
drives the compiled graph through `astream_events`, forwards what the
client should see, and persists exactly one turn whatever happens:
success, a stop request, the step limit or a failure.

Outbound events are SSE dicts: `token`, `notice`, `done`, `error`.
"""
import asyncio
import json
import math
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncGenerator, Awaitable, Callable

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langgraph.errors import GraphRecursionError

from chatagent.agent.graph import build_graph, build_tool_map
from chatagent.agent.nodes import TOOL_END_EVENT, TOOL_START_EVENT
from chatagent.agent.normalize import ImageFetcher, build_user_message, fetch_image_as_base64, message_text
from chatagent.agent.prompts import (
    GENERIC_ERROR_MESSAGE,
    NOTICE_AGENT_ACTIVATED,
    NOTICE_AGENT_NO_DOCUMENTS,
    NOTICE_GENERATING_IMAGE,
    NOTICE_RAG_FAILED,
    NOTICE_SEARCHING,
    NOTICE_STEP_LIMIT,
    QUERY_DOCUMENT_CONTEXT,
)
from chatagent.agent.providers import (
    Provider,
    get_chat_model,
    infer_provider_from_model,
    map_provider_code,
    model_supports_tools,
)
from chatagent.agent.state import AgentSpec, ChatRequest, DocumentRef, TurnContext
from chatagent.config import Settings, get_settings
from chatagent.db.retrieval import DocumentRetriever, RetrievalResult, build_rag_context
from chatagent.db.supabase_client import AgentStore, TurnRecord, TurnStore
from chatagent.errors import ConfigurationError
from chatagent.logging import (
    log_error,
    log_flow_complete,
    log_header,
    log_turn_summary,
    log_warning,
)
from chatagent.tools.builtin import IMAGE_GENERATION_TOOL, WEB_SEARCH_TOOL
from chatagent.tools.mcp import get_cached_mcp_tools
from chatagent.tools.registry import ToolDescriptor
from chatagent.tools.selector import select_relevant_tools_with_domain_filter

# Only these nodes produce text the user should see
RESPONSE_NODES = ("agent", "supervisor")


def sse_event(kind: str, **data) -> dict:
    return {"event": kind, "data": json.dumps(data, default=str)}


class CancellationRegistry:
    """Stop flags for in-flight turns, keyed by conversation id."""

    def __init__(self):
        self._events: dict[str, asyncio.Event] = {}

    def register(self, conversation_id: str) -> asyncio.Event:
        event = asyncio.Event()
        self._events[conversation_id] = event
        return event

    def request_stop(self, conversation_id: str) -> bool:
        """Trip the stop flag. Returns False when no turn is running."""
        event = self._events.get(conversation_id)
        if event is None:
            return False
        event.set()
        return True

    def unregister(self, conversation_id: str, event: asyncio.Event) -> None:
        # A newer turn for the same conversation may have replaced the flag
        if self._events.get(conversation_id) is event:
            del self._events[conversation_id]

    def is_running(self, conversation_id: str) -> bool:
        return conversation_id in self._events


cancellations = CancellationRegistry()


class UsageTracker:
    """Token usage summed over every model call of a turn."""

    def __init__(self):
        self.totals = {"input_tokens": 0, "output_tokens": 0, "total_tokens": 0}
        self.calls = 0
        self.flushed = False

    def add(self, message) -> None:
        usage = getattr(message, "usage_metadata", None) or {}
        for key in self.totals:
            self.totals[key] += int(usage.get(key) or 0)
        self.calls += 1

    def flush(self) -> dict:
        self.flushed = True
        print(f"  [SESSION] Usage over {self.calls} model call(s): {self.totals}")
        return dict(self.totals)


def parse_citations(output: str) -> list[dict]:
    """Search-style tool output (a JSON list of results) as citations."""
    try:
        data = json.loads(output)
    except (TypeError, ValueError):
        return []
    if not isinstance(data, list):
        return []
    return [
        {
            "title": item.get("title", ""),
            "link": item.get("link") or item.get("url", ""),
            "snippet": item.get("snippet", ""),
        }
        for item in data
        if isinstance(item, dict)
    ]


@dataclass
class ChatDependencies:
    """Collaborators of a chat session, swappable in tests."""
    turn_store: TurnStore
    agent_store: AgentStore | None = None
    retriever: DocumentRetriever | None = None
    discover_tools: Callable[[], Awaitable[list[ToolDescriptor]]] = get_cached_mcp_tools
    model_factory: Callable[..., BaseChatModel] = get_chat_model
    fetch_image: ImageFetcher = fetch_image_as_base64
    cancellations: CancellationRegistry = field(default_factory=lambda: cancellations)
    settings: Settings | None = None


class ChatSession:
    """One streamed chat turn."""

    def __init__(self, request: ChatRequest, deps: ChatDependencies):
        self.request = request
        self.deps = deps
        self.settings = deps.settings or get_settings()
        self.context = TurnContext(
            conversation_id=request.conversation_id,
            query=request.query,
            user_id=request.user_id,
            custom_instruction=request.custom_instruction,
        )
        self.answer = ""
        self.usage = UsageTracker()
        self.citations: list[dict] = []
        self.image_urls: list[str] = []
        self.stopped = False
        self._finalized = False

    # =========================================================================
    # Main loop
    # =========================================================================

    async def run(self) -> AsyncGenerator[dict, None]:
        conversation_id = self.request.conversation_id
        stop_event = self.deps.cancellations.register(conversation_id)
        log_header(f"CHAT TURN {conversation_id}: {self.request.query[:50]}")

        try:
            notices: list[str] = []
            graph, user_message = await self._prepare(notices)
            for notice in notices:
                yield sse_event("notice", type="status", message=notice)

            async for event in self._consume(graph, user_message, stop_event):
                yield event

        except GraphRecursionError as e:
            log_warning(f"Step limit reached: {e}")
            yield sse_event("notice", type="status", message=NOTICE_STEP_LIMIT)
            yield self._done_event()
        except ConfigurationError as e:
            log_error("Configuration error", e)
            yield sse_event("error", message=str(e))
        except Exception as e:
            log_error("Chat turn failed", e)
            yield sse_event("error", message=GENERIC_ERROR_MESSAGE)
        finally:
            await self._finalize(stop_event)

    async def _consume(self, graph, user_message: HumanMessage, stop_event: asyncio.Event):
        max_iterations = self.settings.MAX_AGENT_ITERATIONS
        config = {"recursion_limit": 2 * max_iterations + 2}
        model_calls = 0

        async with aclosing(
            graph.astream_events({"messages": [user_message]}, config=config, version="v2")
        ) as events:
            async for event in events:
                if stop_event.is_set():
                    self.stopped = True
                    print(f"  [SESSION] Stop requested for {self.request.conversation_id}")
                    return

                kind = event["event"]
                node = (event.get("metadata") or {}).get("langgraph_node")

                if kind == "on_chat_model_stream":
                    if node in RESPONSE_NODES:
                        token = message_text(event["data"]["chunk"].content)
                        if token:
                            self.answer += token
                            yield sse_event("token", token=token)

                elif kind == "on_chat_model_end":
                    output = event["data"].get("output")
                    self.usage.add(output)
                    if node in RESPONSE_NODES:
                        model_calls += 1
                        if getattr(output, "tool_calls", None) and model_calls >= max_iterations:
                            log_warning(f"Stopping after {model_calls} model calls")
                            yield sse_event("notice", type="status", message=NOTICE_STEP_LIMIT)
                            yield self._done_event()
                            return

                elif kind == "on_custom_event":
                    for outbound in self._on_tool_event(event["name"], event.get("data") or {}):
                        yield outbound

                elif kind == "on_chain_end" and not event.get("parent_ids"):
                    yield self._done_event()
                    log_flow_complete(self.answer)

                if stop_event.is_set():
                    self.stopped = True
                    print(f"  [SESSION] Stop requested for {self.request.conversation_id}")
                    return

    def _done_event(self) -> dict:
        usage = self.usage.flush()
        return sse_event(
            "done",
            message=self.answer,
            usage=usage,
            citations=self.citations,
            images=self.image_urls,
        )

    def _on_tool_event(self, name: str, data: dict) -> list[dict]:
        tool = data.get("name")
        if name == TOOL_START_EVENT:
            if tool == WEB_SEARCH_TOOL:
                return [sse_event("notice", type="status", message=NOTICE_SEARCHING, tool=tool)]
            if tool == IMAGE_GENERATION_TOOL:
                return [sse_event("notice", type="status", message=NOTICE_GENERATING_IMAGE, tool=tool)]
            return []

        if name == TOOL_END_EVENT and not data.get("is_error"):
            output = data.get("output") or ""
            if tool == IMAGE_GENERATION_TOOL:
                self.image_urls.append(output)
                return [sse_event("notice", type="image", url=output, tool=tool)]
            citations = parse_citations(output)
            if citations:
                self.citations.extend(citations)
                return [sse_event("notice", type="citations", citations=citations, tool=tool)]
        return []

    # =========================================================================
    # Turn preparation
    # =========================================================================

    async def _prepare(self, notices: list[str]):
        """Resolve agent, model, tools and documents, then compile the graph."""
        request = self.request
        agent = await self._load_agent(notices)
        if agent is not None and agent.custom_instruction and not self.context.custom_instruction:
            self.context.custom_instruction = agent.custom_instruction

        provider, model_name, api_key, temperature = self._resolve_model(agent)
        self.context.provider = provider
        self.context.model_name = model_name
        self.context.api_key = api_key
        self.context.image_api_key = api_key if provider is Provider.OPEN_AI else self.settings.OPENAI_API_KEY
        self.context.history = await self._load_history()

        discovered = await self.deps.discover_tools()
        needs_tools = model_supports_tools(provider, model_name)
        bound_tools: list[ToolDescriptor] = []
        if needs_tools:
            bound_tools = select_relevant_tools_with_domain_filter(
                request.query, discovered, self.settings.MAX_TOOLS
            )
            bound_tools = _merge_tools(bound_tools, self._agent_tools(agent, discovered))

        model = self.deps.model_factory(
            provider, model_name, api_key, needs_tools=needs_tools, temperature=temperature
        )

        query_text = await self._apply_documents(agent, notices)
        user_message = await build_user_message(query_text, request.images, provider, self.deps.fetch_image)

        sub_agents = None
        if agent is not None and agent.is_supervisor:
            sub_agents = await self._load_sub_agents(agent)

        graph = build_graph(
            model,
            provider,
            self.context,
            bound_tools,
            build_tool_map(discovered, agent),
            agent=agent,
            sub_agents=sub_agents,
        )
        return graph, user_message

    def _resolve_model(self, agent: AgentSpec | None) -> tuple[Provider, str, str, float | None]:
        request = self.request
        response_model = agent.response_model if agent is not None else None
        if response_model is not None:
            if response_model.provider:
                provider = map_provider_code(response_model.provider)
            else:
                provider = infer_provider_from_model(response_model.name)
            model_name = response_model.name
            api_key = response_model.api_key or request.api_key
            temperature = response_model.temperature
        else:
            provider = map_provider_code(request.provider)
            model_name = request.model
            api_key = request.api_key
            temperature = request.temperature

        api_key = api_key or self.settings.provider_key(provider.value)
        if not api_key:
            raise ConfigurationError(f"API key is required but not provided for {provider.value}")
        return provider, model_name, api_key, temperature

    async def _load_agent(self, notices: list[str]) -> AgentSpec | None:
        if not self.request.agent_id or self.deps.agent_store is None:
            return None
        try:
            agent = await asyncio.to_thread(self.deps.agent_store.get_agent, self.request.agent_id)
        except Exception as e:
            log_error(f"Error fetching agent {self.request.agent_id}", e)
            return None
        if agent is not None:
            notices.append(NOTICE_AGENT_ACTIVATED if agent.documents else NOTICE_AGENT_NO_DOCUMENTS)
        return agent

    async def _load_sub_agents(self, supervisor: AgentSpec) -> list[AgentSpec | None]:
        async def load(agent_id: str) -> AgentSpec | None:
            try:
                return await asyncio.to_thread(self.deps.agent_store.get_agent, agent_id)
            except Exception as e:
                log_error(f"Error fetching tool agent {agent_id}", e)
                return None

        return list(await asyncio.gather(*(load(agent_id) for agent_id in supervisor.sub_agent_ids)))

    async def _load_history(self) -> list:
        try:
            return await asyncio.to_thread(
                self.deps.turn_store.load_history,
                self.request.conversation_id,
                self.settings.HISTORY_TURNS,
            )
        except Exception as e:
            log_error("Error loading conversation history", e)
            return []

    def _agent_tools(self, agent: AgentSpec | None, discovered: list[ToolDescriptor]) -> list[ToolDescriptor]:
        if agent is None:
            return []
        available = build_tool_map(discovered, agent)
        named = [available[name] for name in agent.tool_names if name in available]
        return list(agent.bound_tools) + named

    async def _apply_documents(self, agent: AgentSpec | None, notices: list[str]) -> str:
        """
        Retrieve document context. Agent flows get it in the system block,
        otherwise it is appended to the query. Disabled when images are attached.
        """
        query = self.request.query
        refs = _unique_refs(list(self.request.document_refs) + (agent.documents if agent else []))
        if not refs or self.request.images or self.deps.retriever is None:
            return query

        try:
            results = await asyncio.to_thread(self._retrieve, refs)
        except Exception as e:
            log_error("Document retrieval failed", e)
            notices.append(NOTICE_RAG_FAILED)
            return query

        rag_context = build_rag_context(results, self.settings.RAG_MAX_CONTEXT_CHARS)
        print(f"  [SESSION] Document context: {len(results)} results, {len(rag_context)} chars")
        if agent is not None:
            self.context.rag_context = rag_context
            return query
        return QUERY_DOCUMENT_CONTEXT.format(query=query, context=rag_context)

    def _retrieve(self, refs: list[DocumentRef]) -> list[RetrievalResult]:
        limit = self.settings.RAG_RESULT_LIMIT
        per_index = max(1, math.ceil(limit / len(refs)))
        results = []
        for ref in refs:
            for result in self.deps.retriever.search(ref.index_id, self.request.query, per_index):
                if result.score >= self.settings.RAG_SCORE_THRESHOLD:
                    results.append(result)
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    # =========================================================================
    # Finalization
    # =========================================================================

    async def _finalize(self, stop_event: asyncio.Event) -> None:
        """Detach the stop flag, persist the turn, clear request data. Runs once."""
        if self._finalized:
            return
        self._finalized = True
        self.deps.cancellations.unregister(self.request.conversation_id, stop_event)

        record = TurnRecord(
            conversation_id=self.request.conversation_id,
            user_id=self.request.user_id,
            query=self.request.query,
            answer=self.answer,
            credit_used=self.request.credit_used,
            provider=self.context.provider.value,
            model=self.context.model_name or self.request.model,
            agent_id=self.request.agent_id,
            usage=dict(self.usage.totals),
            citations=self.citations,
            image_urls=self.image_urls,
            stopped=self.stopped,
        )
        log_turn_summary(record.conversation_id, record.answer, record.usage, stopped=self.stopped)
        try:
            await asyncio.shield(asyncio.to_thread(self.deps.turn_store.save_turn, record))
        except Exception as e:
            log_error("Error saving conversation turn", e)
        finally:
            self.context.clear()


def _merge_tools(*groups: list[ToolDescriptor]) -> list[ToolDescriptor]:
    seen = set()
    merged = []
    for group in groups:
        for tool in group:
            if tool.name not in seen:
                seen.add(tool.name)
                merged.append(tool)
    return merged


def _unique_refs(refs: list[DocumentRef]) -> list[DocumentRef]:
    seen = set()
    unique = []
    for ref in refs:
        if ref.index_id not in seen:
            seen.add(ref.index_id)
            unique.append(ref)
    return unique


def stream_chat(request: ChatRequest, deps: ChatDependencies) -> AsyncGenerator[dict, None]:
    """Run a chat turn, yielding SSE event dicts."""
    return ChatSession(request, deps).run()
