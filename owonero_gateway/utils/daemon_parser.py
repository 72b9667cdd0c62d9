"""Utilities for reshaping free-form Owonero daemon replies.

The daemon protocol has no framing or schema, so everything here is
heuristic: locate where the reply starts, then pull out the one value the
dashboard cares about for a given command.
"""

from __future__ import annotations

import re
from typing import Callable, Optional

NO_MINER = "no miner"

_LINE_SPLIT_RE = re.compile(r"\r?\n")
_HEIGHT_TOKEN_RE = re.compile(r"\bheight=\d+")
_INTEGER_RE = re.compile(r"-?\d+")
_ADDRESS_RE = re.compile(r"\bOWO[0-9A-Z]+\b", re.IGNORECASE)
_SHOWS_RE = re.compile(r"shows", re.IGNORECASE)
_IDENTIFIER_RE = re.compile(r"[A-Za-z0-9]{4,}")

DAEMON_BANNER = "owonero-daemon"
_MINER_ANCHORS = (DAEMON_BANNER, "miner-active", "mineractive")


def _split_lines(text: str) -> list[str]:
    return [line.replace("\x00", "") for line in _LINE_SPLIT_RE.split(text)]


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

def strip_empty_lines(text: str) -> str:
    """Drop NULs and blank lines, rejoining what is left with ``\\n``."""
    return "\n".join(line for line in _split_lines(text) if line.strip())


# ---------------------------------------------------------------------------
# Echo-aware extraction
# ---------------------------------------------------------------------------

def find_reply_anchor(command: str, text: str) -> Optional[int]:
    """Return the index of the line after which the daemon's reply begins.

    Tried in order: an echo of the command, the daemon banner, then a
    ``height=N`` status line.
    """
    lines = [line.strip() for line in _split_lines(text)]
    cmd = command.strip()

    for idx, line in enumerate(lines):
        if line == cmd:
            return idx
    for idx, line in enumerate(lines):
        if line.startswith(DAEMON_BANNER):
            return idx
    for idx, line in enumerate(lines):
        if _HEIGHT_TOKEN_RE.search(line):
            return idx
    return None


def extract_after_echo(command: str, text: str) -> str:
    """Return the daemon reply without the echoed command or banner line.

    Degrades to the cleaned text, then to the raw text, when no anchor is
    found or nothing follows it.
    """
    idx = find_reply_anchor(command, text)
    if idx is not None:
        tail = [line.strip() for line in _split_lines(text)[idx + 1:]]
        tail = [line for line in tail if line]
        if tail:
            return "\n".join(tail)

    cleaned = strip_empty_lines(text)
    if cleaned:
        return cleaned
    return text


# ---------------------------------------------------------------------------
# Command-specific strategies
# ---------------------------------------------------------------------------

class ReplyTexts:
    """The three views of one reply that strategies search through."""

    __slots__ = ("command", "original", "cleaned", "echo")

    def __init__(self, command: str, original: str, cleaned: str, echo: str):
        self.command = command
        self.original = original
        self.cleaned = cleaned
        self.echo = echo


def _extract_height(texts: ReplyTexts) -> str:
    for area in (texts.echo, texts.cleaned, texts.original):
        m = _INTEGER_RE.search(area)
        if m:
            return f"height:{m.group(0)}"
    candidate = next(
        (area for area in (texts.echo, texts.cleaned, texts.original) if area),
        "",
    )
    return strip_empty_lines(candidate)


def find_miner_address(text: str) -> Optional[str]:
    """First ``OWO...`` address token, ignoring the daemon's own name."""
    for m in _ADDRESS_RE.finditer(text):
        token = m.group(0)
        if not token.lower().startswith("owonero"):
            return token
    return None


def _token_after_shows(text: str) -> Optional[str]:
    for line in text.splitlines():
        parts = line.split()
        for i, part in enumerate(parts):
            if _SHOWS_RE.search(part):
                if i + 1 < len(parts):
                    return parts[i + 1]
                break
    return None


def _miner_after_anchor(command: str, text: str) -> Optional[str]:
    lines = [line.strip() for line in _split_lines(text)]
    header_idx = next(
        (
            i for i, line in enumerate(lines)
            if any(anchor in line.lower() for anchor in _MINER_ANCHORS)
        ),
        None,
    )
    if header_idx is None:
        return None

    cmd = command.strip().lower()
    for line in lines[header_idx + 1:]:
        if not line or line.lower() == "ok":
            continue
        tokens = line.split()
        address = next(filter(None, map(find_miner_address, tokens)), None)
        if address is not None:
            return address
        for token in tokens:
            tl = token.lower()
            if "owonero" in tl or tl.startswith("height=") or tl in ("ok", cmd):
                continue
            if _IDENTIFIER_RE.search(token):
                return token
    return None


def _extract_miner(texts: ReplyTexts) -> str:
    areas = (texts.original, texts.cleaned, texts.echo)

    for area in areas:
        address = find_miner_address(area)
        if address:
            return address

    for area in areas:
        token = _token_after_shows(area)
        if token:
            return token

    raw = texts.original or texts.cleaned or texts.echo
    found = _miner_after_anchor(texts.command, raw)
    return found or NO_MINER


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

ExtractionStrategy = Callable[[ReplyTexts], str]

# Matched against the lowercased command by prefix, first entry wins.
COMMAND_STRATEGIES: dict[str, ExtractionStrategy] = {
    "getheight": _extract_height,
    "mineractive": _extract_miner,
}


def strategy_for(command: str) -> Optional[ExtractionStrategy]:
    cmd = command.strip().lower()
    for prefix, strategy in COMMAND_STRATEGIES.items():
        if cmd.startswith(prefix):
            return strategy
    return None


def extract_adjusted(command: str, original: str, cleaned: str | None = None) -> str:
    """Derive the single value the dashboard shows for *command*'s reply."""
    if cleaned is None:
        cleaned = strip_empty_lines(original)
    echo = extract_after_echo(command, original)
    strategy = strategy_for(command)
    if strategy is None:
        return echo
    return strategy(ReplyTexts(command, original, cleaned, echo))
