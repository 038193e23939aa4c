"""
Text Analyzer Plugin - Appends simple statistics about the message.

Counts words and sentences and estimates reading time, then appends the
selected figures to the text as ``Label: value`` lines.
"""

import math
import re
from typing import Any, Dict, List

from ..base import OptionField, OptionType, Plugin


WORDS_PER_MINUTE = 200

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def count_words(text: str) -> int:
    """Count whitespace-separated words."""
    return len([word for word in text.split() if word])


def count_sentences(text: str) -> int:
    """Count sentences terminated by '.', '!' or '?' (or end of text)."""
    return len([s for s in _SENTENCE_SPLIT.split(text) if s.strip()])


def reading_time_minutes(word_count: int) -> int:
    """Estimate reading time in whole minutes, rounded up."""
    return math.ceil(word_count / WORDS_PER_MINUTE)


class TextAnalyzerPlugin(Plugin):
    """
    Analyzes the message and appends the requested statistics.

    Each statistic is switched on by its boolean option. With every option
    off the text passes through unchanged.

    Example output for "Hello there. General Kenobi!":

        Hello there. General Kenobi!

        Word count: 4
        Sentence count: 2
        Reading time: 1 min
    """

    id = "text_analyzer"
    name = "Text Analyzer"
    description = "Appends word count, sentence count and estimated reading time"
    version = "1.0.0"
    options_schema = [
        OptionField(
            id="include_word_count",
            label="Include word count",
            type=OptionType.BOOLEAN,
            default=True,
        ),
        OptionField(
            id="include_sentence_count",
            label="Include sentence count",
            type=OptionType.BOOLEAN,
            default=True,
        ),
        OptionField(
            id="include_reading_time",
            label="Include reading time",
            type=OptionType.BOOLEAN,
            default=True,
        ),
    ]

    def analyze(self, text: str) -> Dict[str, int]:
        """Compute every statistic for the given text."""
        words = count_words(text)
        return {
            "word_count": words,
            "sentence_count": count_sentences(text),
            "reading_time_minutes": reading_time_minutes(words),
        }

    async def process(self, input: str, options: Dict[str, Any]) -> str:
        stats = self.analyze(input)
        lines: List[str] = []

        if options.get("include_word_count"):
            lines.append(f"Word count: {stats['word_count']}")
        if options.get("include_sentence_count"):
            lines.append(f"Sentence count: {stats['sentence_count']}")
        if options.get("include_reading_time"):
            lines.append(f"Reading time: {stats['reading_time_minutes']} min")

        if not lines:
            return input
        return input + "\n\n" + "\n".join(lines)
