from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

_ID = r"([A-Za-z0-9_-]+)"


@dataclass(frozen=True, slots=True)
class StatusCheck:
    payment_id: str


@dataclass(frozen=True, slots=True)
class Approve:
    payment_id: str


@dataclass(frozen=True, slots=True)
class Reject:
    payment_id: str


@dataclass(frozen=True, slots=True)
class StartServer:
    pass


@dataclass(frozen=True, slots=True)
class QueryStatus:
    pass


@dataclass(frozen=True, slots=True)
class Help:
    pass


@dataclass(frozen=True, slots=True)
class Ping:
    pass


@dataclass(frozen=True, slots=True)
class NoMatch:
    pass


Command = StatusCheck | Approve | Reject | StartServer | QueryStatus | Help | Ping | NoMatch


def _pattern(regex: str, build: Callable[[str], Command]) -> Callable[[str], Command | None]:
    compiled = re.compile(regex, re.IGNORECASE)

    def match(text: str) -> Command | None:
        m = compiled.fullmatch(text)
        # Keywords are case-insensitive, the captured id keeps its case.
        return build(m.group(1)) if m else None

    return match


def _keywords(words: tuple[str, ...], build: Callable[[], Command]) -> Callable[[str], Command | None]:
    def match(text: str) -> Command | None:
        return build() if text.lower() in words else None

    return match


# Evaluated in order; first match wins.
_GRAMMAR: tuple[Callable[[str], Command | None], ...] = (
    _pattern(rf"status\s+{_ID}", StatusCheck),
    _pattern(rf"{_ID}\s*\+\s*approved", Approve),
    _pattern(rf"{_ID}\s*\+\s*rejected", Reject),
    _keywords(("start", "start server"), StartServer),
    _keywords(("status", "server status"), QueryStatus),
    _keywords(("help", "commands"), Help),
    _keywords(("ping",), Ping),
)


def parse_command(raw_text: str | None) -> Command:
    """Parse an inbound chat message into a relay command.

    Total over any input: text that matches nothing yields `NoMatch`.
    """

    text = (raw_text or "").strip()
    if not text:
        return NoMatch()

    for matcher in _GRAMMAR:
        command = matcher(text)
        if command is not None:
            return command

    return NoMatch()


def status_hint(payment_id: str) -> str:
    return f"status {payment_id}"


def approve_hint(payment_id: str) -> str:
    return f"{payment_id} + approved"


def reject_hint(payment_id: str) -> str:
    return f"{payment_id} + rejected"
