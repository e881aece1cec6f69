"""
Prompt templates and user-facing notices.
"""

SUPERVISOR_DEFAULT_PROMPT = "You are a supervisor agent that coordinates multiple agents."

SUB_AGENT_DEFAULT_PROMPT = "You are a specialized tool agent."

SUPERVISOR_AGENTS_HEADER = "\n\nAvailable Agents:\n"

SUPERVISOR_AGENT_LINE = "{index}. {title}: {description}\n"

SUPERVISOR_DELEGATION_INSTRUCTION = (
    "\nTo delegate a task to a tool agent, use the call_tool_agent_X function "
    "where X is the agent index (0-based)."
)

DELEGATE_TOOL_DESCRIPTION = "Delegate task to {title}: {description}"

DELEGATE_TASK_DESCRIPTION = "The specific task or query to delegate to this tool agent"

DELEGATED_TASK_SUFFIX = "\n\nTask delegated from supervisor: {task}"

CUSTOM_INSTRUCTION_PREFIX = "Please note these additional instructions: {instruction}"

# Document context inside an agent's system block
AGENT_DOCUMENT_CONTEXT = """

----
Context from uploaded documents:
{context}
----

Use the above document context when relevant to answer the user's question."""

# Document context appended to the user's query when no agent is active
QUERY_DOCUMENT_CONTEXT = """{query}

Relevant context from the user's documents:
{context}

Answer the question using this context where it applies."""

NO_DOCUMENTS_FOUND = (
    "Note: No specific relevant documents found in the uploaded files for this query."
)

DOCUMENT_HEADER = "--- Document {index} ({source}) ---\n"

SIBLING_NOT_EXECUTED = (
    "Not executed: only the first tool call ({executed}) was processed in this step. "
    "Call {name} again if it is still needed."
)

# Lifecycle notices sent to the client
NOTICE_SEARCHING = "Searching the web..."
NOTICE_GENERATING_IMAGE = "Generating image..."
NOTICE_AGENT_ACTIVATED = "Agent activated"
NOTICE_AGENT_NO_DOCUMENTS = "Agent active (no documents)"
NOTICE_RAG_FAILED = "Document search failed, answering without document context"
NOTICE_STEP_LIMIT = "Stopped after reaching the maximum number of reasoning steps."

GENERIC_ERROR_MESSAGE = "Something went wrong while generating the response. Please try again."
