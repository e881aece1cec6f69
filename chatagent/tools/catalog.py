"""
Static catalog of connector tool families.

Each entry names a domain, the keywords that suggest it and the tool
names the connector server exposes for it. Families with a
`DomainIndicators` entry can be detected as the single target of a query.
"""
from dataclasses import dataclass, field


@dataclass(frozen=True)
class DomainIndicators:
    strong_keywords: tuple[str, ...]
    context_keywords: tuple[str, ...]


@dataclass(frozen=True)
class CatalogEntry:
    key: str
    domain: str
    keywords: tuple[str, ...]
    tools: tuple[str, ...]
    indicators: DomainIndicators | None = field(default=None)


# Always kept by the domain filter regardless of the detected domains
ESSENTIAL_TOOL_NAMES = ("web_search", "generate_image")


def _entry(key, domain, keywords, tools, strong=None, context=None) -> CatalogEntry:
    indicators = DomainIndicators(tuple(strong), tuple(context)) if strong else None
    return CatalogEntry(key, domain, tuple(keywords), tuple(tools), indicators)


_ENTRIES = [
    _entry(
        "slack", "communication",
        ["slack", "message", "channel", "chat", "team", "workspace", "notification"],
        ["list_slack_channels", "send_slack_message", "get_channel_id_by_name", "get_channel_messages",
         "list_workspace_users", "get_slack_user_info", "get_user_profile", "get_channel_members",
         "create_slack_channel", "set_channel_topic", "set_channel_purpose", "archive_channel",
         "invite_users_to_channel", "kick_user_from_channel", "open_direct_message", "send_direct_message",
         "send_ephemeral_message", "reply_to_thread", "get_thread_messages", "start_thread_with_message",
         "find_threads_in_channel", "reply_to_thread_with_broadcast", "get_thread_info"],
        strong=["slack", "slack channel", "slack message"],
        context=["channel", "message", "workspace", "team chat"],
    ),
    _entry(
        "github", "development",
        ["github", "git", "repository", "code", "branch", "commit", "pull request", "issue", "development"],
        ["get_github_repositories", "create_github_branch", "get_git_commits", "get_github_user_info",
         "get_github_repository_info", "get_repository_branches", "get_repository_issues",
         "create_pull_request", "get_pull_request_details", "get_pull_requests", "get_tags_or_branches"],
        strong=["github", "git", "repository"],
        context=["code", "branch", "commit", "pull request"],
    ),
    _entry(
        "jira", "project_management",
        ["jira", "issue", "project", "task", "bug", "story", "ticket", "workflow", "sprint", "board"],
        ["get_jira_projects", "get_jira_issues", "create_jira_issue", "update_jira_issue",
         "get_jira_issue", "add_jira_comment", "assign_jira_issue", "transition_jira_issue",
         "get_jira_transitions", "search_jira_issues"],
    ),
    _entry(
        "asana", "project_management",
        ["asana", "project", "task", "assignment", "team", "workflow", "management"],
        ["create_asana_project", "list_asana_projects", "get_asana_project", "update_asana_project",
         "create_asana_task", "list_asana_tasks", "get_asana_task", "update_asana_task",
         "complete_asana_task", "list_asana_sections", "add_task_to_asana_section",
         "get_asana_user_info", "get_asana_workspace_id", "create_asana_team", "list_asana_team_ids",
         "get_asana_team"],
        strong=["asana", "asana project", "asana task"],
        context=["project", "task", "assignment", "team"],
    ),
    _entry(
        "mongodb", "database",
        ["mongodb", "database", "collection", "document", "query", "data", "storage"],
        ["connect_to_mongodb", "find_documents", "aggregate_documents", "count_documents",
         "insert_one_document", "insert_many_documents", "update_one_document", "update_many_documents",
         "delete_one_document", "delete_many_documents", "list_databases", "list_collections",
         "create_index", "collection_indexes", "drop_collection", "db_stats"],
    ),
    _entry(
        "stripe", "finance",
        ["stripe", "payment", "billing", "invoice", "subscription", "customer", "charge", "refund"],
        ["get_stripe_account_info", "retrieve_balance", "create_coupon", "list_coupons",
         "create_customer", "list_customers", "list_disputes", "update_dispute",
         "create_invoice", "create_invoice_item", "finalize_invoice", "list_invoices",
         "create_payment_link", "list_payment_intents", "create_price", "list_prices",
         "create_product", "list_products", "create_refund", "cancel_subscription",
         "list_subscriptions", "update_subscription", "search_documentation",
         "create_payment_intent", "retrieve_payment_intent", "confirm_payment_intent",
         "cancel_payment_intent", "retrieve_charge", "list_charges", "capture_charge",
         "create_payment_method", "attach_payment_method", "detach_payment_method",
         "list_payment_methods", "retrieve_payment_method", "list_events", "retrieve_event"],
        strong=["stripe", "payment", "billing"],
        context=["invoice", "subscription", "customer", "charge"],
    ),
    _entry(
        "zoom", "communication",
        ["zoom", "meeting", "video", "conference", "call", "schedule", "invite", "invitation",
         "add people", "add participants"],
        ["get_zoom_user_info", "list_zoom_meetings", "create_zoom_meeting",
         "get_zoom_meeting_info", "update_zoom_meeting", "delete_zoom_meeting",
         "generate_zoom_meeting_invitation", "invite_to_zoom_meeting"],
        strong=["zoom", "zoom meeting", "video call", "video conference"],
        context=["meeting", "schedule", "create meeting", "join meeting"],
    ),
    _entry(
        "gmail", "communication",
        ["gmail", "email", "message", "thread", "label", "draft", "send"],
        ["search_gmail_messages", "get_gmail_message_content", "get_gmail_messages_content_batch",
         "send_gmail_message", "draft_gmail_message", "get_gmail_thread_content",
         "get_gmail_threads_content_batch", "list_gmail_labels", "manage_gmail_label",
         "modify_gmail_message_labels", "batch_modify_gmail_message_labels"],
        strong=["gmail", "email", "send email"],
        context=["message", "draft", "thread", "label"],
    ),
    _entry(
        "drive", "storage",
        ["drive", "google drive", "file", "folder", "document", "storage", "upload", "download", "share"],
        ["search_drive_files", "get_drive_file_content", "list_drive_items",
         "create_drive_file", "list_drive_shared_drives", "delete_drive_file"],
        strong=["google drive", "drive", "file storage"],
        context=["file", "folder", "document", "upload", "download"],
    ),
    _entry(
        "calendar", "scheduling",
        ["calendar", "google calendar", "event", "meeting", "appointment", "schedule", "time"],
        ["list_calendars", "get_calendar_events", "create_calendar_event",
         "modify_calendar_event", "delete_calendar_event", "get_calendar_event", "search_calendar_events"],
        strong=["google calendar", "calendar", "schedule event"],
        context=["event", "appointment", "meeting", "schedule"],
    ),
    _entry(
        "search", "information",
        ["search", "web", "internet", "find", "lookup", "information", "browse"],
        ["web_search", "global_search"],
    ),
    _entry(
        "image", "creative",
        ["image", "generate", "create", "picture", "visual", "art", "design"],
        ["generate_image"],
    ),
    _entry(
        "time", "utility",
        ["time", "date", "current", "now", "today", "datetime", "timestamp"],
        ["get_current_time"],
    ),
]

TOOL_CATALOG: dict[str, CatalogEntry] = {entry.key: entry for entry in _ENTRIES}

# Order in which single-domain detection is attempted
DOMAIN_DETECTION_ORDER = ("zoom", "slack", "gmail", "drive", "calendar", "asana", "github", "stripe")


def catalog_tool_names() -> set[str]:
    """Every tool name listed anywhere in the catalog."""
    return {name for entry in TOOL_CATALOG.values() for name in entry.tools}
