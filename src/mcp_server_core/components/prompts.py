"""
Base classes for MCP prompts.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..protocol.schemas import Prompt, PromptArgument, PromptMessage

logger = structlog.get_logger(__name__)


class PromptArgumentError(ValueError):
    """Raised when a prompt is requested without its required arguments."""


_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def render_template(template: str, arguments: Dict[str, Any]) -> str:
    """
    Substitute ``{name}`` placeholders with argument values.

    Only bare identifiers are placeholders. Unknown names and any other
    braces are left as written.
    """

    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        return str(arguments[name]) if name in arguments else match.group(0)

    return _PLACEHOLDER.sub(replace, template)


def text_message(text: str, role: str = "user") -> Dict[str, Any]:
    return PromptMessage(role=role, content={"type": "text", "text": text}).model_dump()


def format_prompt_messages(value: Any) -> List[Dict[str, Any]]:
    """
    Normalise a prompt's return value into ``prompts/get`` messages.

    A plain string becomes a single user message. In a list, strings
    become user messages, ``PromptMessage`` objects are dumped, and dicts
    keep their role (default ``user``) with string content wrapped as
    text content.
    """
    if isinstance(value, str):
        return [text_message(value)]

    if not isinstance(value, list):
        return [text_message(json.dumps(value, indent=2, default=str))]

    messages = []
    for item in value:
        if isinstance(item, PromptMessage):
            messages.append(item.model_dump())
        elif isinstance(item, str):
            messages.append(text_message(item))
        elif isinstance(item, dict):
            content = item.get("content", "")
            if not isinstance(content, dict):
                content = {"type": "text", "text": str(content)}
            messages.append({"role": item.get("role", "user"), "content": content})
        else:
            messages.append(text_message(json.dumps(item, default=str)))
    return messages


class BasePrompt(ABC):
    """
    Base class for all MCP prompts.

    Subclasses define ``name``, ``description`` and ``arguments`` and
    implement ``get``.
    """

    name: str = ""
    description: str = ""
    arguments: List[PromptArgument] = []

    def __init__(self):
        self.logger = logger.bind(prompt=self.name)

    def get_metadata(self) -> Prompt:
        return Prompt(name=self.name, description=self.description, arguments=self.arguments)

    def validate_arguments(self, arguments: Dict[str, Any]) -> None:
        missing = [
            argument.name
            for argument in self.arguments
            if argument.required and argument.name not in arguments
        ]
        if missing:
            raise PromptArgumentError(f"Missing required arguments: {', '.join(missing)}")

    @abstractmethod
    def get(self, arguments: Dict[str, Any]) -> Any:
        """
        Produce the prompt messages.

        Returns:
            A string, a list of messages, or a dict with ``messages`` and
            optionally ``description``
        """

    def render(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Validate arguments and build the ``prompts/get`` result."""
        self.validate_arguments(arguments)
        self.logger.info("Rendering prompt", argument_names=sorted(arguments))

        value = self.get(arguments)
        description = self.description
        if isinstance(value, dict) and "messages" in value:
            description = value.get("description", description)
            value = value["messages"]

        return {
            "description": description,
            "messages": format_prompt_messages(value),
        }


class TemplatePrompt(BasePrompt):
    """Prompt rendering a single ``{placeholder}`` template as a user message."""

    def __init__(
        self,
        name: str,
        template: str,
        description: str = "",
        arguments: Optional[List[PromptArgument]] = None,
    ):
        self.name = name
        self.template = template
        self.description = description
        self.arguments = arguments or []
        super().__init__()

    def get(self, arguments: Dict[str, Any]) -> Any:
        return render_template(self.template, arguments)


class FunctionPrompt(BasePrompt):
    """Prompt backed by a plain callable receiving the arguments as keywords."""

    def __init__(
        self,
        name: str,
        func: Callable[..., Any],
        description: str = "",
        arguments: Optional[List[PromptArgument]] = None,
    ):
        self.name = name
        self.func = func
        self.description = description or (func.__doc__ or "").strip()
        self.arguments = arguments or []
        super().__init__()

    def get(self, arguments: Dict[str, Any]) -> Any:
        return self.func(**arguments)
