"""
Base classes for MCP resources.

A resource is either bound to a fixed URI or to a URI template with
``{param}`` segments, in which case the values extracted from the
requested URI are passed to ``read``.
"""

import base64
import json
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..protocol.schemas import Resource, ResourceTemplate

logger = structlog.get_logger(__name__)

_PARAM_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


class UriTemplate:
    """Matches URIs against a template such as ``notes://{folder}/{note_id}``."""

    def __init__(self, template: str):
        self.template = template
        self.parameters: List[str] = _PARAM_PATTERN.findall(template)

        if len(set(self.parameters)) != len(self.parameters):
            raise ValueError(f"Duplicate parameter in URI template: {template}")

        pattern = ""
        position = 0
        for match in _PARAM_PATTERN.finditer(template):
            pattern += re.escape(template[position:match.start()])
            pattern += f"(?P<{match.group(1)}>[^/]+)"
            position = match.end()
        pattern += re.escape(template[position:])
        self._regex = re.compile(f"^{pattern}$")

    def match(self, uri: str) -> Optional[Dict[str, str]]:
        """Return the extracted parameters, or None when the URI does not match."""
        match = self._regex.match(uri)
        if match is None:
            return None
        return match.groupdict()

    def expand(self, **params: Any) -> str:
        return _PARAM_PATTERN.sub(lambda m: str(params[m.group(1)]), self.template)

    def __repr__(self) -> str:
        return f"UriTemplate({self.template!r})"


def format_resource_contents(uri: str, mime_type: str, value: Any) -> List[Dict[str, Any]]:
    """
    Convert a resource's return value into ``resources/read`` contents.

    Strings become ``text`` and bytes become a base64 ``blob``. Dicts
    carrying ``text`` or ``blob`` are kept and gain ``uri``/``mimeType``
    defaults, and a list of such dicts yields several contents. Any
    other value is rendered as JSON text.
    """
    if isinstance(value, str):
        return [{"uri": uri, "mimeType": mime_type, "text": value}]

    if isinstance(value, (bytes, bytearray)):
        blob = base64.b64encode(bytes(value)).decode("ascii")
        return [{"uri": uri, "mimeType": mime_type, "blob": blob}]

    if _is_content_block(value):
        return [{"uri": uri, "mimeType": mime_type, **value}]

    if isinstance(value, list) and value and all(_is_content_block(item) for item in value):
        return [{"uri": uri, "mimeType": mime_type, **item} for item in value]

    return [{"uri": uri, "mimeType": mime_type, "text": json.dumps(value, indent=2, default=str)}]


def _is_content_block(value: Any) -> bool:
    return isinstance(value, dict) and ("text" in value or "blob" in value)


class BaseResource(ABC):
    """
    Base class for all MCP resources.

    Subclasses set exactly one of ``uri`` or ``uri_template`` and
    implement ``read``.
    """

    uri: Optional[str] = None
    uri_template: Optional[str] = None
    name: str = ""
    description: str = ""
    mime_type: str = "text/plain"

    def __init__(self):
        if bool(self.uri) == bool(self.uri_template):
            raise ValueError(
                f"Resource '{self.name}' must define exactly one of uri or uri_template"
            )
        self._template = UriTemplate(self.uri_template) if self.uri_template else None
        self.logger = logger.bind(resource=self.name)

    @property
    def is_template(self) -> bool:
        return self._template is not None

    @property
    def key(self) -> str:
        """Registry key: the URI or the URI template."""
        return self.uri_template if self.is_template else self.uri

    def matches(self, uri: str) -> Optional[Dict[str, str]]:
        """Return template parameters ({} for a fixed URI) if ``uri`` addresses this resource."""
        if self._template is not None:
            return self._template.match(uri)
        return {} if uri == self.uri else None

    @abstractmethod
    def read(self, params: Dict[str, str]) -> Any:
        """
        Read the resource.

        Args:
            params: Values extracted from the URI template ({} for fixed URIs)

        Returns:
            str, bytes, a content dict or any JSON-serializable value
        """

    def read_contents(self, uri: str, params: Dict[str, str]) -> Dict[str, Any]:
        """Read the resource and build the ``resources/read`` result."""
        self.logger.info("Reading resource", uri=uri)
        return {"contents": format_resource_contents(uri, self.mime_type, self.read(params))}

    def to_metadata(self) -> Dict[str, Any]:
        if self.is_template:
            return ResourceTemplate(
                uriTemplate=self.uri_template,
                name=self.name,
                description=self.description,
                mimeType=self.mime_type,
            ).model_dump()
        return Resource(
            uri=self.uri,
            name=self.name,
            description=self.description,
            mimeType=self.mime_type,
        ).model_dump()


class FunctionResource(BaseResource):
    """Resource backed by a plain callable receiving the template parameters as keywords."""

    def __init__(
        self,
        name: str,
        func: Callable[..., Any],
        uri: Optional[str] = None,
        uri_template: Optional[str] = None,
        description: str = "",
        mime_type: str = "text/plain",
    ):
        self.name = name
        self.uri = uri
        self.uri_template = uri_template
        self.description = description or (func.__doc__ or "").strip()
        self.mime_type = mime_type
        self.func = func
        super().__init__()

    def read(self, params: Dict[str, str]) -> Any:
        return self.func(**params)
