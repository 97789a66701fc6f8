"""
Registry of tools, resources and prompts served by the MCP server.
"""

import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from .prompts import BasePrompt
from .resources import BaseResource
from .tools import BaseTool

logger = structlog.get_logger(__name__)

# Called with "tools", "resources" or "prompts" after a registry change
ChangeListener = Callable[[str], None]


class ComponentRegistry:
    """
    Thread-safe registry of named components.

    Registering a name twice replaces the earlier component. Listeners
    are notified after every change, outside the registry lock.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._tools: Dict[str, BaseTool] = {}
        self._resources: Dict[str, BaseResource] = {}
        self._prompts: Dict[str, BasePrompt] = {}
        self._listeners: List[ChangeListener] = []

    # Tools

    def register_tool(self, tool: BaseTool) -> None:
        """
        Register a tool under its name.

        Args:
            tool: Tool instance
        """
        if not isinstance(tool, BaseTool):
            raise TypeError(f"Expected a BaseTool, got {type(tool).__name__}")
        if not tool.name:
            raise ValueError("Tool name must not be empty")

        with self._lock:
            replaced = tool.name in self._tools
            self._tools[tool.name] = tool

        logger.info("Registered tool", tool_name=tool.name, replaced=replaced)
        self._notify("tools")

    def unregister_tool(self, name: str) -> bool:
        with self._lock:
            removed = self._tools.pop(name, None) is not None
        if removed:
            logger.info("Unregistered tool", tool_name=name)
            self._notify("tools")
        return removed

    def get_tool(self, name: str) -> Optional[BaseTool]:
        with self._lock:
            return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def list_tools(self) -> List[Dict[str, Any]]:
        with self._lock:
            tools = list(self._tools.values())
        return [tool.get_schema().to_dict() for tool in tools]

    # Resources

    def register_resource(self, resource: BaseResource) -> None:
        """
        Register a resource under its URI or URI template.

        Args:
            resource: Resource instance
        """
        if not isinstance(resource, BaseResource):
            raise TypeError(f"Expected a BaseResource, got {type(resource).__name__}")

        with self._lock:
            replaced = resource.key in self._resources
            self._resources[resource.key] = resource

        logger.info(
            "Registered resource",
            resource_key=resource.key,
            template=resource.is_template,
            replaced=replaced,
        )
        self._notify("resources")

    def unregister_resource(self, key: str) -> bool:
        with self._lock:
            removed = self._resources.pop(key, None) is not None
        if removed:
            logger.info("Unregistered resource", resource_key=key)
            self._notify("resources")
        return removed

    def get_resource(self, key: str) -> Optional[BaseResource]:
        """Look up a resource by its exact URI or URI template."""
        with self._lock:
            return self._resources.get(key)

    def has_resource(self, key: str) -> bool:
        with self._lock:
            return key in self._resources

    def find_resource(self, uri: str) -> Optional[Tuple[BaseResource, Dict[str, str]]]:
        """
        Resolve a concrete URI to a resource and its template parameters.

        Fixed URIs take precedence; templates are tried in registration
        order.
        """
        with self._lock:
            resources = list(self._resources.values())

        for resource in resources:
            if not resource.is_template and resource.uri == uri:
                return resource, {}

        for resource in resources:
            if resource.is_template:
                params = resource.matches(uri)
                if params is not None:
                    return resource, params

        return None

    def list_resources(self) -> List[Dict[str, Any]]:
        with self._lock:
            resources = list(self._resources.values())
        return [r.to_metadata() for r in resources if not r.is_template]

    def list_resource_templates(self) -> List[Dict[str, Any]]:
        with self._lock:
            resources = list(self._resources.values())
        return [r.to_metadata() for r in resources if r.is_template]

    # Prompts

    def register_prompt(self, prompt: BasePrompt) -> None:
        """
        Register a prompt under its name.

        Args:
            prompt: Prompt instance
        """
        if not isinstance(prompt, BasePrompt):
            raise TypeError(f"Expected a BasePrompt, got {type(prompt).__name__}")
        if not prompt.name:
            raise ValueError("Prompt name must not be empty")

        with self._lock:
            replaced = prompt.name in self._prompts
            self._prompts[prompt.name] = prompt

        logger.info("Registered prompt", prompt_name=prompt.name, replaced=replaced)
        self._notify("prompts")

    def unregister_prompt(self, name: str) -> bool:
        with self._lock:
            removed = self._prompts.pop(name, None) is not None
        if removed:
            logger.info("Unregistered prompt", prompt_name=name)
            self._notify("prompts")
        return removed

    def get_prompt(self, name: str) -> Optional[BasePrompt]:
        with self._lock:
            return self._prompts.get(name)

    def has_prompt(self, name: str) -> bool:
        with self._lock:
            return name in self._prompts

    def list_prompts(self) -> List[Dict[str, Any]]:
        with self._lock:
            prompts = list(self._prompts.values())
        return [prompt.get_metadata().to_dict() for prompt in prompts]

    # Listeners

    def add_listener(self, listener: ChangeListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            templates = sum(1 for r in self._resources.values() if r.is_template)
            return {
                "tools": len(self._tools),
                "resources": len(self._resources) - templates,
                "resource_templates": templates,
                "prompts": len(self._prompts),
            }

    def _notify(self, kind: str) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(kind)
            except Exception as e:
                logger.error("Registry listener failed", kind=kind, error=str(e), exc_info=True)
