"""
Built-in text plugins.

- UpperCasePlugin: Converts text to upper case
- TrimWhitespacePlugin: Strips and collapses whitespace
- FindReplacePlugin: Literal or regex substitution
- TextAnalyzerPlugin: Appends word/sentence counts and reading time
- WrapTemplatePlugin: Adds a prefix, suffix or surrounding template
"""

from typing import List

from ..base import Plugin
from .upper_case import UpperCasePlugin
from .trim_whitespace import TrimWhitespacePlugin
from .find_replace import FindReplacePlugin
from .text_analyzer import TextAnalyzerPlugin
from .wrap_template import WrapTemplatePlugin


def builtin_plugins() -> List[Plugin]:
    """Create the built-in plugins in their canonical registration order."""
    return [
        TrimWhitespacePlugin(),
        FindReplacePlugin(),
        UpperCasePlugin(),
        WrapTemplatePlugin(),
        TextAnalyzerPlugin(),
    ]


__all__ = [
    "builtin_plugins",
    "UpperCasePlugin",
    "TrimWhitespacePlugin",
    "FindReplacePlugin",
    "TextAnalyzerPlugin",
    "WrapTemplatePlugin",
]
