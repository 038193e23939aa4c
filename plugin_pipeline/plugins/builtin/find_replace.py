"""
Find & Replace Plugin - Literal or regular-expression substitution.
"""

import logging
import re
from typing import Any, Dict

from ..base import OptionField, OptionType, Plugin


logger = logging.getLogger(__name__)


class FindReplacePlugin(Plugin):
    """
    Replaces every occurrence of a pattern in the message.

    An empty ``find`` option makes the plugin a no-op. An invalid regular
    expression raises ``re.error``, which the pipeline records as a
    failed execution.

    Example:
        options = {"find": r"\\d+", "replace": "#", "use_regex": True}
        await FindReplacePlugin().process("order 66", options)  # "order #"
    """

    id = "find_replace"
    name = "Find & Replace"
    description = "Replaces text using a literal string or a regular expression"
    version = "1.1.0"
    options_schema = [
        OptionField(id="find", label="Find", type=OptionType.TEXT, default=""),
        OptionField(id="replace", label="Replace with", type=OptionType.TEXT, default=""),
        OptionField(
            id="use_regex",
            label="Treat 'Find' as a regular expression",
            type=OptionType.BOOLEAN,
            default=False,
        ),
        OptionField(
            id="ignore_case",
            label="Ignore case",
            type=OptionType.BOOLEAN,
            default=False,
        ),
    ]

    async def process(self, input: str, options: Dict[str, Any]) -> str:
        find = options.get("find") or ""
        if not find:
            return input

        replace = options.get("replace") or ""
        flags = re.IGNORECASE if options.get("ignore_case") else 0

        if options.get("use_regex"):
            pattern = re.compile(find, flags)
        else:
            if not flags:
                return input.replace(find, replace)
            pattern = re.compile(re.escape(find), flags)
            # Literal mode must not expand backreferences in the replacement
            return pattern.sub(lambda _match: replace, input)

        result, count = pattern.subn(replace, input)
        logger.debug(f"find_replace substituted {count} occurrence(s)")
        return result
