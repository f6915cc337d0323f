"""
ToolStream - Validation of tool definitions and conversation messages.

All checks are pure and synchronous. They run before any request is sent to
the model endpoint, so a failure aborts the operation without network I/O.

Tool schemas follow the subset of JSON Schema accepted by function calling:

    {
        "type": "object",
        "properties": {
            "city": {"type": "string", "description": "City name."},
            "unit": {"type": "string", "enum": ["C", "F"]},
        },
        "required": ["city"],
    }
"""

import re
from typing import TYPE_CHECKING, Any, Optional

from .exceptions import InvalidMessage, InvalidToolDefinition

if TYPE_CHECKING:
    from .tools import ToolDefinition, ToolRegistry


NAME_PATTERN = re.compile(r"[A-Za-z0-9_]+")
INVALID_NAME_MESSAGE = "cannot contain spaces or special characters"

VALID_PARAMETER_TYPES = frozenset(
    {"object", "array", "string", "number", "integer", "boolean", "null"}
)

VALID_ROLES = ("user", "model")
PART_KEYS = ("text", "functionCall", "functionResponse")


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


def validate_tool_definition(
    name: Any,
    description: Any,
    parameters: Any,
    registry: Optional["ToolRegistry"],
) -> None:
    """Validate a tool's declaration.

    Every problem found is collected; the raised error lists all of them.

    Raises:
        InvalidToolDefinition: If any check fails.
    """
    errors: list[str] = []

    if not name:
        errors.append("name is required")
    elif not isinstance(name, str) or not NAME_PATTERN.fullmatch(name):
        errors.append(f"name {INVALID_NAME_MESSAGE}")

    if not description:
        errors.append("description is required")

    if isinstance(name, str) and name and (registry is None or registry.get(name) is None):
        errors.append("tool not registered")

    if parameters is not None:
        _check_root_parameters(parameters, errors)

    if errors:
        raise InvalidToolDefinition(
            f"Invalid tool definition {name!r}: " + ", ".join(errors),
            errors=errors,
        )


def validate_tool(definition: "ToolDefinition", registry: Optional["ToolRegistry"]) -> None:
    """Validate a ToolDefinition, including the presence of a handler."""
    validate_tool_definition(
        definition.name,
        definition.description,
        definition.parameters,
        registry,
    )
    handler = definition.handler
    if handler is None and registry is not None:
        registered = registry.get(definition.name)
        handler = registered.handler if registered else None
    if not callable(handler):
        raise InvalidToolDefinition(
            f"Invalid tool definition {definition.name!r}: handler must be provided",
            errors=["handler must be provided"],
        )


def validate_parameter_schema(schema: Any) -> list[str]:
    """Return the problems found in a parameter schema (empty when valid)."""
    errors: list[str] = []
    _check_root_parameters(schema, errors)
    return errors


def _check_root_parameters(parameters: Any, errors: list[str]) -> None:
    if not isinstance(parameters, dict):
        errors.append("parameters must be an object")
        return

    root_type = parameters.get("type")
    if not root_type:
        errors.append("parameters must have a 'type' field")
        return
    if root_type != "object":
        errors.append("parameters type must be 'object' at root level")
        return

    _check_schema_node(parameters, errors)


def _check_schema_node(schema: Any, errors: list[str]) -> None:
    if not isinstance(schema, dict):
        errors.append("parameters schema node must be an object")
        return

    node_type = schema.get("type")
    if not isinstance(node_type, str) or node_type not in VALID_PARAMETER_TYPES:
        errors.append(f"parameters invalid parameter type: {node_type}")
        return

    if "enum" in schema:
        _check_enum(schema, errors)

    if node_type == "object":
        _check_object(schema, errors)
    elif node_type == "array":
        _check_array(schema, errors)

    description = schema.get("description")
    if description is not None and not isinstance(description, str):
        errors.append("parameters description must be a string")


def _check_object(schema: dict[str, Any], errors: list[str]) -> None:
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        errors.append("parameters object properties must be an object")
        return

    for property_name, property_schema in properties.items():
        if not isinstance(property_name, str) or not NAME_PATTERN.fullmatch(property_name):
            errors.append(f"parameters property name '{property_name}' {INVALID_NAME_MESSAGE}")
        _check_schema_node(property_schema, errors)

    if "required" in schema:
        required = schema["required"]
        if not isinstance(required, list):
            errors.append("parameters required must be an array")
        elif not all(isinstance(field_name, str) for field_name in required):
            errors.append("parameters required fields must be strings")
        elif not all(field_name in properties for field_name in required):
            errors.append("parameters required fields must exist in properties")


def _check_array(schema: dict[str, Any], errors: list[str]) -> None:
    items = schema.get("items")
    if items is None:
        errors.append("parameters array must have items definition")
        return
    _check_schema_node(items, errors)


def _check_enum(schema: dict[str, Any], errors: list[str]) -> None:
    enum = schema["enum"]
    if not isinstance(enum, list):
        errors.append("parameters enum must be an array")
        return
    if schema.get("type") != "string":
        errors.append("parameters enum can only be used with string types")
        return
    if not all(isinstance(value, str) for value in enum):
        errors.append("parameters enum values must be strings")


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def validate_message(message: Any, index: Optional[int] = None) -> None:
    """Validate the shape of one conversation message.

    Raises:
        InvalidMessage: If the role is unknown or a part is malformed.
    """
    where = f"message {index}" if index is not None else "message"

    if not isinstance(message, dict):
        raise InvalidMessage(f"{where} must be an object", index=index)

    role = str(message.get("role") or "").lower()
    if role not in VALID_ROLES:
        raise InvalidMessage(
            f"{where} role must be one of: {', '.join(VALID_ROLES)}",
            index=index,
            errors=["role is invalid"],
        )

    parts = message.get("parts")
    if not isinstance(parts, list) or not parts:
        raise InvalidMessage(
            f"{where} parts must be a non-empty array",
            index=index,
            errors=["parts are missing"],
        )

    if not all(_is_valid_part(part) for part in parts):
        raise InvalidMessage(
            f"{where} parts must be an array of objects with text, functionCall "
            "or functionResponse keys",
            index=index,
            errors=["parts are malformed"],
        )


def _is_valid_part(part: Any) -> bool:
    if not isinstance(part, dict):
        return False
    present = [key for key in PART_KEYS if key in part]
    if len(present) != 1:
        return False
    value = part[present[0]]
    if present[0] == "text":
        return isinstance(value, str)
    return isinstance(value, dict) and isinstance(value.get("name"), str)


def validate_conversation(contents: Any) -> None:
    """Validate a whole conversation.

    Raises:
        InvalidMessage: If the conversation is empty or any message is invalid.
    """
    if not isinstance(contents, list):
        raise InvalidMessage("contents must be an array")
    if not contents:
        raise InvalidMessage("contents must not be empty")
    for index, message in enumerate(contents):
        validate_message(message, index=index)
