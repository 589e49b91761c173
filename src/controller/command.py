"""Comment command grammar.

    [whitespace] @<bot-name> <whitespace> /publish <whitespace> <git-url> [<whitespace> <ref>]

Tokens after <ref> are ignored. A comment that does not open with the
mention is not addressed to the bot; anything malformed after the mention
is a CommandParseError.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from src.infra.errors import CommandParseError

_PUBLISH_RE = re.compile(r"\s+/publish\s+(?P<git>\S+)(?:\s+(?P<ref>\S+))?")


@dataclass(frozen=True)
class PublishCommand:
    git: str
    ref: str | None = None


Command = PublishCommand


def parse_command(text: str, bot_name: str) -> Command | None:
    """Parse a comment body. None means the comment is not a command."""
    rest = text.lstrip()
    mention = f"@{bot_name}"
    if not rest.startswith(mention):
        return None

    match = _PUBLISH_RE.match(rest, len(mention))
    if match is None:
        raise CommandParseError(f"Unrecognized command: {rest[:80]!r}")
    return PublishCommand(git=match["git"], ref=match["ref"])
