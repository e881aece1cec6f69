"""
Tool relevance selector.

Narrows the full tool inventory to the tools worth binding for one query,
using the keyword catalog in `chatagent.tools.catalog`. Three paths:

- high confidence single domain: only that domain's tools, ranked
- medium confidence single domain: domain tools plus search/time on demand
- general: the core tools first, then catalog tools ranked by keyword hits

Selection never raises; on any internal error the core tools are returned.
"""
from dataclasses import dataclass
from typing import Literal

from chatagent.tools.builtin import (
    CURRENT_TIME_TOOL,
    WEB_SEARCH_TOOL,
    get_core_tools,
)
from chatagent.tools.catalog import (
    DOMAIN_DETECTION_ORDER,
    ESSENTIAL_TOOL_NAMES,
    TOOL_CATALOG,
    catalog_tool_names,
)
from chatagent.tools.registry import ToolDescriptor

DEFAULT_MAX_TOOLS = 30


@dataclass(frozen=True)
class DomainDetection:
    """A query identified as targeting one connector family."""
    catalog_key: str
    domain: str
    confidence: Literal["high", "medium"]


def _valid_tools(tools: list) -> list[ToolDescriptor]:
    """Drop entries without a name and later duplicates of a name."""
    seen = set()
    valid = []
    for tool in tools or []:
        name = getattr(tool, "name", None)
        if not name or name in seen:
            continue
        seen.add(name)
        valid.append(tool)
    return valid


def detect_specific_domain(query: str) -> DomainDetection | None:
    """Return the first connector family the query explicitly names, if any."""
    query_lower = query.lower()
    for key in DOMAIN_DETECTION_ORDER:
        entry = TOOL_CATALOG[key]
        indicators = entry.indicators
        strong_hits = [k for k in indicators.strong_keywords if k in query_lower]
        if not strong_hits:
            continue
        has_context = any(k in query_lower for k in indicators.context_keywords)
        confidence = "high" if has_context or len(strong_hits) >= 2 else "medium"
        return DomainDetection(catalog_key=key, domain=entry.domain, confidence=confidence)
    return None


def _rank(tools: list[ToolDescriptor], scores: list[int]) -> list[ToolDescriptor]:
    # Stable: equal scores keep their input order
    order = sorted(range(len(tools)), key=lambda i: -scores[i])
    return [tools[i] for i in order]


def _handle_domain_query(
    query: str,
    available: list[ToolDescriptor],
    detection: DomainDetection,
    max_tools: int,
    core_tools: list[ToolDescriptor],
) -> list[ToolDescriptor]:
    query_lower = query.lower()
    entry = TOOL_CATALOG[detection.catalog_key]
    domain_tools = [t for t in available if t.name in entry.tools]
    print(f"  [SELECTOR] {detection.catalog_key} query ({detection.confidence}), {len(domain_tools)} domain tools")

    if detection.confidence == "high" and domain_tools:
        scores = []
        for tool in domain_tools:
            score = 1
            name_lower = tool.name.lower()
            for keyword in entry.keywords:
                if keyword in name_lower or keyword in query_lower:
                    score += 2
            description = (tool.description or "").lower()
            for keyword in entry.keywords:
                if keyword in description:
                    score += 1
            scores.append(score)
        return _rank(domain_tools, scores)[:max_tools]

    selected = domain_tools[: max(0, min(max_tools - 2, len(domain_tools)))]
    if max_tools - len(selected) > 0:
        by_name = {t.name: t for t in core_tools}
        if ("search" in query_lower or "find" in query_lower) and WEB_SEARCH_TOOL in by_name:
            selected.append(by_name[WEB_SEARCH_TOOL])
        if ("time" in query_lower or "date" in query_lower) and CURRENT_TIME_TOOL in by_name:
            selected.append(by_name[CURRENT_TIME_TOOL])
    return selected


def _handle_general_query(
    query: str,
    available: list[ToolDescriptor],
    max_tools: int,
    core_tools: list[ToolDescriptor],
) -> list[ToolDescriptor]:
    selected = list(core_tools)
    remaining = max_tools - len(core_tools)
    core_names = {t.name for t in core_tools}
    catalog_names = catalog_tool_names()
    candidates = [t for t in available if t.name not in core_names and t.name in catalog_names]
    if remaining <= 0 or not candidates:
        return selected

    query_lower = query.lower()
    words = query_lower.split()
    scores = [0] * len(candidates)
    for entry in TOOL_CATALOG.values():
        keyword_score = 0
        for keyword in entry.keywords:
            if keyword in query_lower:
                keyword_score += 2
        for word in words:
            for keyword in entry.keywords:
                if word in keyword or keyword in word:
                    keyword_score += 1
        for i, tool in enumerate(candidates):
            if tool.name in entry.tools:
                scores[i] += keyword_score

    selected.extend(_rank(candidates, scores)[:remaining])
    return selected


def select_relevant_tools(
    query: str,
    available_tools: list,
    max_tools: int = DEFAULT_MAX_TOOLS,
    core_tools: list[ToolDescriptor] | None = None,
) -> list[ToolDescriptor]:
    """
    Pick the tools to bind for a query.

    Args:
        query: The user's message
        available_tools: Candidate tools (normally the discovered connector tools)
        max_tools: Upper bound on the number of tools returned for domain queries
        core_tools: Web search, image generation and time descriptors

    Returns:
        Ordered list of tool descriptors
    """
    core = list(core_tools) if core_tools is not None else get_core_tools()
    try:
        available = _valid_tools(available_tools)
        detection = detect_specific_domain(query or "")
        if detection is not None:
            return _handle_domain_query(query, available, detection, max_tools, core)
        return _handle_general_query(query or "", available, max_tools, core)
    except Exception as e:
        print(f"  [SELECTOR] Selection failed, using core tools: {e}")
        return core


def classify_query(query: str) -> list[str]:
    """Domains whose catalog keywords appear in the query, in catalog order."""
    query_lower = query.lower()
    domains = []
    for entry in TOOL_CATALOG.values():
        if entry.domain not in domains and any(k in query_lower for k in entry.keywords):
            domains.append(entry.domain)
    return domains


def filter_tools_by_domain(available_tools: list, domains: list[str]) -> list[ToolDescriptor]:
    """Keep tools from the given domains plus the essential tools."""
    tools = _valid_tools(available_tools)
    if not domains:
        return tools
    allowed = {
        name
        for entry in TOOL_CATALOG.values()
        if entry.domain in domains
        for name in entry.tools
    }
    return [t for t in tools if t.name in ESSENTIAL_TOOL_NAMES or t.name in allowed]


def select_relevant_tools_with_domain_filter(
    query: str,
    available_tools: list,
    max_tools: int = DEFAULT_MAX_TOOLS,
    core_tools: list[ToolDescriptor] | None = None,
) -> list[ToolDescriptor]:
    """Restrict candidates to the query's domains, then run the selector on them."""
    try:
        filtered = filter_tools_by_domain(available_tools, classify_query(query or ""))
        candidates = [t for t in filtered if t.name not in ESSENTIAL_TOOL_NAMES]
    except Exception as e:
        print(f"  [SELECTOR] Domain filter failed, using all tools: {e}")
        candidates = available_tools
    selected = select_relevant_tools(query, candidates, max_tools, core_tools)
    print(f"  [SELECTOR] Selected {len(selected)} tools: {[t.name for t in selected]}")
    return selected
