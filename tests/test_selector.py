from types import SimpleNamespace

from chatagent.tools.builtin import CORE_TOOL_NAMES
from chatagent.tools.selector import (
    classify_query,
    detect_specific_domain,
    filter_tools_by_domain,
    select_relevant_tools,
    select_relevant_tools_with_domain_filter,
)
from tests.fakes import make_tool


def names(tools):
    return [t.name for t in tools]


def test_zoom_request_gets_only_zoom_tools_ranked():
    available = [
        make_tool("list_zoom_meetings", "List meetings"),
        make_tool("send_slack_message", "Send a message to a Slack channel"),
        make_tool("create_zoom_meeting", "Schedule a new Zoom meeting"),
        make_tool("search_gmail_messages", "Search email"),
    ]

    selected = select_relevant_tools_with_domain_filter(
        "Schedule a zoom meeting with the design team tomorrow", available
    )

    assert names(selected) == ["create_zoom_meeting", "list_zoom_meetings"]
    assert not set(names(selected)) & set(CORE_TOOL_NAMES)


def test_detection_confidence():
    assert detect_specific_domain("schedule a zoom meeting").confidence == "high"
    assert detect_specific_domain("find my zoom recordings").confidence == "medium"
    assert detect_specific_domain("what is the capital of france") is None


def test_high_confidence_ties_keep_available_order():
    available = [
        make_tool("delete_zoom_meeting"),
        make_tool("get_zoom_user_info"),
    ]

    selected = select_relevant_tools("zoom meeting", available)

    assert names(selected) == ["delete_zoom_meeting", "get_zoom_user_info"]


def test_high_confidence_truncates_to_max_tools():
    available = [make_tool(n) for n in ("list_zoom_meetings", "create_zoom_meeting", "delete_zoom_meeting")]

    selected = select_relevant_tools("zoom meeting please", available, max_tools=2)

    assert len(selected) == 2


def test_medium_confidence_adds_search_on_demand():
    available = [make_tool("list_zoom_meetings"), make_tool("get_zoom_meeting_info")]

    selected = select_relevant_tools("find my zoom recordings", available)

    assert names(selected) == ["list_zoom_meetings", "get_zoom_meeting_info", "web_search"]


def test_medium_confidence_adds_time_on_demand():
    selected = select_relevant_tools("what time is my zoom", [make_tool("list_zoom_meetings")])

    assert names(selected) == ["list_zoom_meetings", "get_current_time"]


def test_general_query_puts_core_tools_first_and_ranks_catalog_tools():
    available = [
        make_tool("search_drive_files"),
        make_tool("create_jira_issue"),
        make_tool("not_in_catalog"),
    ]

    selected = select_relevant_tools("what is the latest news on the project", available)

    assert names(selected)[:3] == list(CORE_TOOL_NAMES)
    assert names(selected)[3:] == ["create_jira_issue", "search_drive_files"]


def test_general_query_fills_remaining_slots_only():
    available = [make_tool("search_drive_files"), make_tool("create_jira_issue")]

    selected = select_relevant_tools("what is the latest news on the project", available, max_tools=4)

    assert names(selected) == [*CORE_TOOL_NAMES, "create_jira_issue"]


def test_malformed_entries_are_skipped():
    available = [SimpleNamespace(name=None), None, make_tool("create_zoom_meeting")]

    selected = select_relevant_tools("zoom meeting", available)

    assert names(selected) == ["create_zoom_meeting"]


def test_internal_error_returns_core_tools():
    class Broken:
        name = "create_zoom_meeting"

        @property
        def description(self):
            raise RuntimeError("bad descriptor")

    selected = select_relevant_tools("zoom meeting", [Broken()])

    assert names(selected) == list(CORE_TOOL_NAMES)


def test_classify_query_collects_domains():
    domains = classify_query("send an invoice over slack")

    assert "communication" in domains
    assert "finance" in domains
    assert "development" not in domains


def test_filter_keeps_domain_and_essential_tools():
    available = [
        make_tool("web_search"),
        make_tool("generate_image"),
        make_tool("send_slack_message"),
        make_tool("create_invoice"),
        make_tool("get_github_repositories"),
    ]

    filtered = filter_tools_by_domain(available, ["communication"])

    assert names(filtered) == ["web_search", "generate_image", "send_slack_message"]


def test_filter_without_domains_keeps_everything():
    available = [make_tool("send_slack_message"), make_tool("create_invoice")]

    assert names(filter_tools_by_domain(available, [])) == ["send_slack_message", "create_invoice"]


def test_general_query_without_tools_returns_core():
    assert names(select_relevant_tools("hello", [])) == list(CORE_TOOL_NAMES)


def test_domain_filter_without_tools_returns_core():
    assert names(select_relevant_tools_with_domain_filter("hello", [])) == list(CORE_TOOL_NAMES)


def test_general_query_keeps_core_when_max_tools_is_below_core_size():
    available = [make_tool("create_jira_issue"), make_tool("search_drive_files")]

    selected = select_relevant_tools("what is the latest news on the project", available, max_tools=2)

    assert names(selected) == list(CORE_TOOL_NAMES)
