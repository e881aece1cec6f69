"""
State definitions for the chat agent.

`ConversationState` is what flows through the LangGraph. Everything else
here is request-scoped data that the graph and tools read but never write.
"""
import operator
from typing import Annotated, Any, Literal

from langchain_core.messages import BaseMessage
from pydantic import BaseModel, Field

from chatagent.agent.providers import Provider


class ConversationState(BaseModel):
    """Messages produced during one request. Nodes only ever append."""
    messages: Annotated[list[BaseMessage], operator.add] = Field(default_factory=list)

    class Config:
        arbitrary_types_allowed = True


class DocumentRef(BaseModel):
    """An uploaded document, searchable through its vector index."""
    index_id: str
    name: str | None = None
    file_id: str | None = None


class ResponseModelConfig(BaseModel):
    """A model pinned by an agent, overriding the request's model."""
    name: str
    provider: str | None = None
    api_key: str | None = None
    temperature: float = 0.7


class AgentSpec(BaseModel):
    """
    A configured assistant persona.

    Supervisors delegate to the agents listed in `sub_agent_ids`; tools named
    in `tool_names` are looked up among the built-in and connector tools,
    while `bound_tools` carries descriptors supplied directly.
    """
    id: str | None = None
    title: str = ""
    description: str | None = None
    system_prompt: str = ""
    documents: list[DocumentRef] = Field(default_factory=list)
    tool_names: list[str] = Field(default_factory=list)
    bound_tools: list[Any] = Field(default_factory=list)
    type: Literal["single", "supervisor"] = "single"
    sub_agent_ids: list[str] = Field(default_factory=list)
    response_model: ResponseModelConfig | None = None
    custom_instruction: str | None = None

    class Config:
        arbitrary_types_allowed = True

    @property
    def is_supervisor(self) -> bool:
        return self.type == "supervisor" and bool(self.sub_agent_ids)


class ChatRequest(BaseModel):
    """Chat request body."""
    query: str = Field(..., min_length=1)
    conversation_id: str
    provider: str | None = None
    model: str = "gpt-4.1"
    images: list[str] = Field(default_factory=list)
    agent_id: str | None = None
    document_refs: list[DocumentRef] = Field(default_factory=list)
    user_id: str | None = None
    api_key: str | None = None
    custom_instruction: str | None = None
    credit_used: float = 1.0
    temperature: float | None = None


class TurnContext(BaseModel):
    """
    Request-scoped data for one turn, passed explicitly to graph nodes and
    tool invocations. Cleared once the turn is persisted.
    """
    conversation_id: str
    query: str
    user_id: str | None = None
    provider: Provider = Provider.OPEN_AI
    model_name: str = ""
    api_key: str | None = Field(default=None, repr=False)
    image_api_key: str | None = Field(default=None, repr=False)
    custom_instruction: str | None = None
    rag_context: str | None = None
    history: list[BaseMessage] = Field(default_factory=list)

    class Config:
        arbitrary_types_allowed = True

    def clear(self):
        """Drop credentials and user content held for the turn."""
        self.query = ""
        self.api_key = None
        self.image_api_key = None
        self.custom_instruction = None
        self.rag_context = None
        self.history = []
