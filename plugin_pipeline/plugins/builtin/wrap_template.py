"""
Wrap Template Plugin - Surrounds the message with fixed text.
"""

from typing import Any, Dict

from ..base import OptionField, OptionType, Plugin


class WrapTemplatePlugin(Plugin):
    """
    Adds text before, after, or around the message.

    Positions:
        prefix:   template + input
        suffix:   input + template
        template: template with every ``{input}`` replaced by the message
                  (the message is appended if the placeholder is missing)
    """

    id = "wrap_template"
    name = "Wrap Template"
    description = "Wraps the message in a prefix, suffix or template"
    version = "1.0.0"
    options_schema = [
        OptionField(id="template", label="Template", type=OptionType.TEXT, default=""),
        OptionField(
            id="position",
            label="Position",
            type=OptionType.SELECT,
            default="template",
            choices=["prefix", "suffix", "template"],
        ),
    ]

    async def process(self, input: str, options: Dict[str, Any]) -> str:
        template = options.get("template") or ""
        position = options.get("position") or "template"

        if not template:
            return input
        if position == "prefix":
            return template + input
        if position == "suffix":
            return input + template
        if position != "template":
            raise ValueError(f"Unknown position: {position}")

        if "{input}" not in template:
            return template + input
        # str.format would choke on other braces in user templates
        return template.replace("{input}", input)
