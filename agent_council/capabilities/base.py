"""Capability provider base: declarations, argument validation, error types."""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

PARAMETER_TYPES = ("string", "number", "boolean", "array", "object")


class CapabilityError(Exception):
    """Base for failures the runner reports back to the model."""


class UnknownProvider(CapabilityError):
    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"Provider not found: {provider_id}")


class UnknownCapability(CapabilityError):
    def __init__(self, provider_id: str, capability_name: str) -> None:
        self.provider_id = provider_id
        self.capability_name = capability_name
        super().__init__(f"Capability not found: {capability_name} in provider {provider_id}")


class InvalidArgument(CapabilityError):
    def __init__(self, parameter: str, reason: str) -> None:
        self.parameter = parameter
        super().__init__(f"Missing or invalid argument: {parameter} {reason}")


class NotFound(CapabilityError):
    def __init__(self, what: str) -> None:
        self.what = what
        super().__init__(f"{what} not found")


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    type: str
    description: str
    required: bool = False
    enum: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if self.type not in PARAMETER_TYPES:
            raise ValueError(f"Unsupported parameter type for {self.name}: {self.type}")


@dataclass(frozen=True)
class Capability:
    name: str
    description: str
    parameters: tuple[ParameterSpec, ...] = ()

    def schema(self) -> dict[str, Any]:
        """JSON schema of the parameters, as consumed by tool-calling models."""
        properties: dict[str, Any] = {}
        for param in self.parameters:
            prop: dict[str, Any] = {"type": param.type, "description": param.description}
            if param.enum:
                prop["enum"] = list(param.enum)
            properties[param.name] = prop
        return {
            "type": "object",
            "properties": properties,
            "required": [p.name for p in self.parameters if p.required],
        }


@dataclass(frozen=True)
class Resource:
    uri: str
    name: str
    description: str
    mime_type: str = "application/json"


@dataclass(frozen=True)
class PromptArgument:
    name: str
    description: str
    required: bool = False


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    description: str
    arguments: tuple[PromptArgument, ...] = ()


def _coerce(param: ParameterSpec, value: Any) -> Any:
    """Return the value converted to the declared type, or raise InvalidArgument."""
    if param.type == "string":
        if not isinstance(value, str):
            raise InvalidArgument(param.name, "must be a string")
    elif param.type == "number":
        # Small models often quote numbers
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                raise InvalidArgument(param.name, "must be a number") from None
            if value.is_integer():
                value = int(value)
        elif isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidArgument(param.name, "must be a number")
    elif param.type == "boolean":
        if not isinstance(value, bool):
            raise InvalidArgument(param.name, "must be a boolean")
    elif param.type == "array":
        if not isinstance(value, list):
            raise InvalidArgument(param.name, "must be an array")
    elif param.type == "object":
        if not isinstance(value, dict):
            raise InvalidArgument(param.name, "must be an object")

    if param.enum is not None and value not in param.enum:
        raise InvalidArgument(param.name, f"must be one of {', '.join(param.enum)}")
    return value


def validate_arguments(capability: Capability, args: dict[str, Any]) -> dict[str, Any]:
    """Check args against the capability's parameters.

    Undeclared keys are dropped. None counts as absent.

    Raises:
        InvalidArgument: naming the first offending parameter.
    """
    validated: dict[str, Any] = {}
    for param in capability.parameters:
        value = args.get(param.name)
        if value is None:
            if param.required:
                raise InvalidArgument(param.name, "is required")
            continue
        validated[param.name] = _coerce(param, value)
    return validated


class CapabilityProvider(ABC):
    """A named bundle of capabilities, resources and prompt templates.

    Subclasses own their records. All handler calls run under the provider's
    lock, so a read never sees a half-applied write, and records leave the
    provider only as copies.
    """

    provider_id: str = ""
    name: str = ""
    description: str = ""
    capabilities: tuple[Capability, ...] = ()
    resources: tuple[Resource, ...] = ()
    prompts: tuple[PromptTemplate, ...] = ()

    def __init__(self) -> None:
        if not self.provider_id or "_" in self.provider_id:
            raise ValueError(f"Invalid provider id {self.provider_id!r}: must be non-empty and contain no '_'")
        self._lock = threading.RLock()

    @abstractmethod
    def _handlers(self) -> dict[str, Callable[[dict[str, Any]], Any]]:
        """Map capability name -> handler taking validated args."""
        ...

    @abstractmethod
    def _read_resource(self, uri: str) -> Any:
        ...

    @abstractmethod
    def _render_prompt(self, name: str, args: dict[str, Any]) -> str:
        ...

    def get_capability(self, name: str) -> Capability | None:
        return next((c for c in self.capabilities if c.name == name), None)

    def execute(self, name: str, args: dict[str, Any]) -> Any:
        capability = self.get_capability(name)
        if capability is None:
            raise UnknownCapability(self.provider_id, name)
        validated = validate_arguments(capability, args)
        handler = self._handlers()[name]
        with self._lock:
            result = handler(validated)
            return copy.deepcopy(result)

    def read_resource(self, uri: str) -> Any:
        if not any(r.uri == uri for r in self.resources):
            raise NotFound(f"Resource {uri}")
        with self._lock:
            return copy.deepcopy(self._read_resource(uri))

    def render_prompt(self, name: str, args: dict[str, Any]) -> str:
        template = next((p for p in self.prompts if p.name == name), None)
        if template is None:
            raise NotFound(f"Prompt {name}")
        for argument in template.arguments:
            if argument.required and args.get(argument.name) is None:
                raise InvalidArgument(argument.name, "is required")
        with self._lock:
            return self._render_prompt(name, args)
