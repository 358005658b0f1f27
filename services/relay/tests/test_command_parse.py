import pytest
from services.relay.app.relay.commands import (
    Approve,
    Help,
    NoMatch,
    Ping,
    QueryStatus,
    Reject,
    StartServer,
    StatusCheck,
    parse_command,
)


@pytest.mark.parametrize(
    "text",
    ["abc123 + approved", "abc123+approved", "abc123  +  approved", "  abc123 +approved  "],
)
def test_approve_wins_regardless_of_whitespace(text: str) -> None:
    assert parse_command(text) == Approve("abc123")


def test_reject_keeps_id_case_and_ignores_keyword_case() -> None:
    assert parse_command("5SQE58Q9SezDZLPjTME1 + REJECTED") == Reject("5SQE58Q9SezDZLPjTME1")


def test_status_with_id_is_a_payment_status_check() -> None:
    assert parse_command("Status Pay_01-x") == StatusCheck("Pay_01-x")


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("start", StartServer()),
        ("START SERVER", StartServer()),
        ("status", QueryStatus()),
        ("server status", QueryStatus()),
        ("Help", Help()),
        ("commands", Help()),
        ("ping", Ping()),
    ],
)
def test_keywords_match_whole_message(text: str, expected: object) -> None:
    assert parse_command(text) == expected


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        "hello there",
        "ping me",
        "abc 123 + approved",
        "abc123 + approve",
        "abc123 + approved please",
        "status abc!123",
    ],
)
def test_everything_else_is_no_match(text: str) -> None:
    assert parse_command(text) == NoMatch()


def test_none_is_no_match() -> None:
    assert parse_command(None) == NoMatch()
