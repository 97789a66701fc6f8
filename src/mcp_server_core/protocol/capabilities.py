"""
Capability negotiation for the MCP initialize handshake.

Computes the capability set advertised to a client from the client's
declared capabilities and the server's own. Boolean features are
AND-ed, malformed client values are coerced to False and object-valued
features are shallow-merged.
"""

import copy
import threading
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_SERVER_CAPABILITIES: Dict[str, Dict[str, Any]] = {
    "tools": {"listChanged": False},
    "resources": {"subscribe": False, "listChanged": False},
    "prompts": {"listChanged": False},
    "logging": {},
}

_MISSING = object()


def _constraint_features(constraints: Dict[str, Dict[str, Any]], name: str) -> List[str]:
    constraint = constraints.get(name)
    return list(constraint.get("features", [])) if constraint else []


def _set_all_features(capabilities: Dict[str, Any], value: bool) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for name, features in capabilities.items():
        if isinstance(features, dict):
            result[name] = _set_all_features(features, value)
        elif isinstance(features, bool):
            result[name] = value
        else:
            result[name] = copy.deepcopy(features)
    return result


class CapabilityNegotiator:
    """
    Negotiates MCP capabilities between client and server.

    Holds a table of default server capabilities and optional
    per-capability constraints. ``negotiate`` itself does not modify
    either and returns a fresh structure on every call.
    """

    def __init__(
        self,
        default_capabilities: Optional[Dict[str, Any]] = None,
        logger: Optional[Any] = None,
    ):
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._lock = threading.RLock()
        self._defaults: Dict[str, Any] = copy.deepcopy(DEFAULT_SERVER_CAPABILITIES)
        self._constraints: Dict[str, Dict[str, Any]] = {}
        if default_capabilities:
            self.set_default_server_capabilities(default_capabilities)

    def negotiate(
        self,
        client_capabilities: Any,
        server_capabilities: Any = None,
    ) -> Dict[str, Any]:
        """
        Negotiate the capability set for a session.

        Args:
            client_capabilities: Capabilities from the client's ``initialize``
            server_capabilities: Capabilities the server declares on top of
                its defaults

        Returns:
            The negotiated capability set
        """
        client = client_capabilities if isinstance(client_capabilities, dict) else {}
        server = server_capabilities if isinstance(server_capabilities, dict) else {}

        with self._lock:
            declared = copy.deepcopy(self._defaults)
            constraints = copy.deepcopy(self._constraints)

        for name, features in server.items():
            if isinstance(features, dict):
                base = declared.get(name)
                merged = dict(base) if isinstance(base, dict) else {}
                merged.update(copy.deepcopy(features))
                declared[name] = merged
            elif features is None or features is False:
                declared.pop(name, None)
            elif not isinstance(declared.get(name), dict):
                declared[name] = {}

        negotiated: Dict[str, Any] = {}
        for name, server_features in declared.items():
            if not isinstance(server_features, dict):
                server_features = {}
            client_features = client.get(name)
            if not isinstance(client_features, dict):
                client_features = {}
            negotiated[name] = self._negotiate_features(
                client_features, server_features, _constraint_features(constraints, name)
            )

        # The server only advertises client-declared capabilities it has constraints for
        for name, client_features in client.items():
            if name in negotiated or name not in constraints:
                continue
            if not isinstance(client_features, dict):
                client_features = {}
            features = self._negotiate_features(
                client_features, {}, _constraint_features(constraints, name)
            )
            for feature in constraints[name].get("features", []):
                features.setdefault(feature, False)
            negotiated[name] = features

        self._logger.debug(
            "Capabilities negotiated",
            capabilities=list(negotiated),
            enabled_features=self.get_capability_summary(negotiated)["enabled_features"],
        )

        return negotiated

    def _negotiate_features(
        self,
        client_features: Dict[str, Any],
        server_features: Dict[str, Any],
        constrained: List[str],
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {}

        for feature, server_value in server_features.items():
            client_value = client_features.get(feature, _MISSING)

            if client_value is _MISSING:
                result[feature] = copy.deepcopy(server_value)
            elif isinstance(server_value, bool):
                result[feature] = (
                    isinstance(client_value, bool) and client_value and server_value
                )
            elif isinstance(server_value, dict):
                merged = copy.deepcopy(server_value)
                if isinstance(client_value, dict):
                    merged.update(copy.deepcopy(client_value))
                result[feature] = merged
            elif isinstance(server_value, list):
                merged_list = copy.deepcopy(server_value)
                if isinstance(client_value, list):
                    merged_list.extend(v for v in client_value if v not in merged_list)
                result[feature] = merged_list
            else:
                result[feature] = copy.deepcopy(server_value)

        # Features only the client mentions are never enabled
        for feature, client_value in client_features.items():
            if feature in server_features:
                continue
            if isinstance(client_value, bool) or feature in constrained:
                result[feature] = False

        return result

    def validate_capabilities(self, capabilities: Any) -> bool:
        """
        Check a capability set against the registered constraints.

        Returns False when a required capability, or one of the features a
        required constraint lists, is missing.
        """
        with self._lock:
            constraints = copy.deepcopy(self._constraints)

        for name, constraint in constraints.items():
            if not constraint.get("required"):
                continue

            if not self.has_capability(capabilities, name):
                self._logger.warning("Required capability missing", capability=name)
                return False

            features = capabilities[name]
            for feature in constraint.get("features", []):
                if not isinstance(features, dict) or feature not in features:
                    self._logger.warning(
                        "Required capability feature missing",
                        capability=name,
                        feature=feature,
                    )
                    return False

        return True

    def get_capability_summary(self, capabilities: Any) -> Dict[str, Any]:
        """Flatten a capability set into dotted feature paths for diagnostics."""
        if not isinstance(capabilities, dict):
            capabilities = {}

        enabled: List[str] = []
        disabled: List[str] = []

        def walk(prefix: str, features: Dict[str, Any]) -> None:
            for feature, value in features.items():
                path = f"{prefix}.{feature}"
                if isinstance(value, bool):
                    (enabled if value else disabled).append(path)
                elif isinstance(value, dict):
                    walk(path, value)

        for name, features in capabilities.items():
            if isinstance(features, dict):
                walk(name, features)

        return {
            "supported_capabilities": list(capabilities),
            "feature_count": len(enabled) + len(disabled),
            "enabled_features": enabled,
            "disabled_features": disabled,
        }

    def has_capability(self, capabilities: Any, name: str) -> bool:
        if not isinstance(capabilities, dict) or name not in capabilities:
            return False
        return capabilities[name] is not None and capabilities[name] is not False

    def has_feature(self, capabilities: Any, name: str, feature: str) -> bool:
        if not self.has_capability(capabilities, name):
            return False
        features = capabilities[name]
        return isinstance(features, dict) and bool(features.get(feature))

    def create_minimal_capabilities(self) -> Dict[str, Any]:
        """Capability set with every feature switched off."""
        return _set_all_features(DEFAULT_SERVER_CAPABILITIES, False)

    def create_full_capabilities(self) -> Dict[str, Any]:
        """Capability set with every feature switched on."""
        return _set_all_features(DEFAULT_SERVER_CAPABILITIES, True)

    # Constraint management

    def add_capability_constraint(self, name: str, constraint: Dict[str, Any]) -> None:
        """
        Attach a constraint to a capability.

        Args:
            name: Capability name (e.g. ``tools``)
            constraint: ``{"required": bool, "features": [str, ...]}``
        """
        normalized = {
            "required": bool(constraint.get("required", False)),
            "features": list(constraint.get("features", [])),
        }
        with self._lock:
            self._constraints[name] = normalized

    def remove_capability_constraint(self, name: str) -> bool:
        with self._lock:
            return self._constraints.pop(name, None) is not None

    def get_capability_constraints(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._constraints)

    # Defaults management

    def set_default_server_capabilities(self, capabilities: Dict[str, Any]) -> None:
        """Overlay capabilities onto the defaults, replacing whole entries."""
        with self._lock:
            for name, features in capabilities.items():
                self._defaults[name] = copy.deepcopy(features)

    def get_default_server_capabilities(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._defaults)
