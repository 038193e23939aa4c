"""
Trim Whitespace Plugin - Normalizes whitespace in a message.
"""

import re
from typing import Any, Dict

from ..base import OptionField, OptionType, Plugin


_WHITESPACE_RUN = re.compile(r"[ \t]+")
_BLANK_LINES = re.compile(r"\n{3,}")


class TrimWhitespacePlugin(Plugin):
    """
    Strips leading/trailing whitespace and optionally collapses runs.

    With ``collapse`` enabled, runs of spaces and tabs become a single
    space and more than one blank line becomes exactly one.
    """

    id = "trim_whitespace"
    name = "Trim Whitespace"
    description = "Strips surrounding whitespace and collapses repeated spaces"
    version = "1.0.0"
    options_schema = [
        OptionField(
            id="collapse",
            label="Collapse repeated whitespace",
            type=OptionType.BOOLEAN,
            default=True,
        ),
    ]

    async def process(self, input: str, options: Dict[str, Any]) -> str:
        text = input.strip()
        if options.get("collapse"):
            lines = [_WHITESPACE_RUN.sub(" ", line).strip() for line in text.split("\n")]
            text = _BLANK_LINES.sub("\n\n", "\n".join(lines))
        return text
