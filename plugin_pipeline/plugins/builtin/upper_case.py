"""
Upper Case Plugin - Converts text to upper case.
"""

from typing import Any, Dict

from ..base import Plugin


class UpperCasePlugin(Plugin):
    """Converts the whole message to upper case."""

    id = "upper_case"
    name = "Upper Case"
    description = "Converts text to upper case"
    version = "1.0.0"

    async def process(self, input: str, options: Dict[str, Any]) -> str:
        return input.upper()
