"""
Base Plugin class for the text processing pipeline.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class OptionType(str, Enum):
    """Type of a configurable plugin option."""
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SELECT = "select"


@dataclass(frozen=True)
class OptionField:
    """
    Declarative description of a single configurable plugin option.

    The pipeline never interprets these beyond reading ``default``; the
    shape is kept intact for whatever configuration surface consumes it.
    """

    id: str
    label: str
    type: OptionType = OptionType.TEXT
    default: Any = None
    choices: Optional[List[Any]] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "label": self.label,
            "type": self.type.value,
            "default": self.default,
        }
        if self.choices is not None:
            result["choices"] = list(self.choices)
        return result


class Plugin(ABC):
    """
    Base class for all text plugins.

    Subclasses declare their identity and options as class attributes and
    implement ``process``:

        class Shout(Plugin):
            id = "shout"
            name = "Shout"
            options_schema = [
                OptionField("suffix", "Suffix", OptionType.TEXT, default="!"),
            ]

            async def process(self, input, options):
                return input.upper() + options["suffix"]
    """

    id: str = ""
    name: str = ""
    description: str = ""
    version: str = "1.0.0"
    options_schema: List[OptionField] = []

    @abstractmethod
    async def process(self, input: str, options: Dict[str, Any]) -> str:
        """
        Transform the input text.

        Args:
            input: Text produced by the previous step (or the raw message).
            options: Resolved options; every schema field is present.

        Returns:
            The transformed text.
        """
        pass

    def default_options(self) -> Dict[str, Any]:
        """Get the schema defaults keyed by option id."""
        return {option.id: option.default for option in self.options_schema}

    def to_dict(self) -> dict:
        """Convert plugin metadata to dictionary."""
        return {
            "id": self.id,
            "name": self.name or self.id,
            "description": self.description,
            "version": self.version,
            "optionsSchema": [option.to_dict() for option in self.options_schema],
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id='{self.id}')"


class FunctionPlugin(Plugin):
    """
    Plugin wrapping a plain callable.

    Handy for tests and ad-hoc chains. The callable may be sync or async.

    Example:
        registry.register(FunctionPlugin("upper", lambda text, opts: text.upper()))
    """

    def __init__(
        self,
        id: str,
        func,
        name: str = "",
        description: str = "",
        version: str = "1.0.0",
        options_schema: Optional[List[OptionField]] = None,
    ):
        self.id = id
        self.name = name or id
        self.description = description
        self.version = version
        self.options_schema = list(options_schema or [])
        self._func = func

    async def process(self, input: str, options: Dict[str, Any]) -> str:
        result = self._func(input, options)
        if hasattr(result, "__await__"):
            result = await result
        return result
