"""
Tests for ToolStream validation module.
"""

import pytest

from toolstream.exceptions import InvalidMessage, InvalidToolDefinition, ValidationError
from toolstream.tools import ToolDefinition, ToolRegistry
from toolstream.validation import (
    validate_conversation,
    validate_message,
    validate_parameter_schema,
    validate_tool,
    validate_tool_definition,
)


@pytest.fixture
def registry():
    registry = ToolRegistry()
    registry.register(
        ToolDefinition(name="get_weather", description="Get weather."),
        handler=lambda args: {"temperature": 22},
    )
    return registry


def weather_schema(**overrides):
    schema = {
        "type": "object",
        "properties": {
            "city": {"type": "string", "description": "City name."},
            "unit": {"type": "string", "enum": ["C", "F"]},
            "days": {"type": "integer"},
        },
        "required": ["city"],
    }
    schema.update(overrides)
    return schema


class TestExceptionInheritance:
    def test_tool_error_is_validation_error(self):
        assert issubclass(InvalidToolDefinition, ValidationError)

    def test_message_error_is_validation_error(self):
        assert issubclass(InvalidMessage, ValidationError)


class TestValidateToolDefinition:
    """Tests for validate_tool_definition."""

    def test_valid_definition_passes(self, registry):
        validate_tool_definition("get_weather", "Get weather.", weather_schema(), registry)

    def test_parameters_optional(self, registry):
        validate_tool_definition("get_weather", "Get weather.", None, registry)

    def test_missing_name(self, registry):
        with pytest.raises(InvalidToolDefinition) as exc:
            validate_tool_definition("", "Get weather.", None, registry)
        assert "name is required" in exc.value.errors

    def test_name_with_spaces(self, registry):
        with pytest.raises(InvalidToolDefinition) as exc:
            validate_tool_definition("get weather", "Get weather.", None, registry)
        assert any("special characters" in e for e in exc.value.errors)

    @pytest.mark.parametrize("name", ["get_weather\n", "get_weather ", " get_weather", "get_weather\t"])
    def test_name_with_surrounding_whitespace(self, registry, name):
        registry.register(ToolDefinition(name=name, description="Get weather."), handler=lambda args: None)
        with pytest.raises(InvalidToolDefinition) as exc:
            validate_tool_definition(name, "Get weather.", None, registry)
        assert exc.value.errors == ["name cannot contain spaces or special characters"]

    def test_non_string_type_in_parameters(self, registry):
        schema = weather_schema(properties={"city": {"type": ["string", "null"]}})
        with pytest.raises(InvalidToolDefinition) as exc:
            validate_tool_definition("get_weather", "Get weather.", schema, registry)
        assert exc.value.errors == ["parameters invalid parameter type: ['string', 'null']"]

    def test_missing_description(self, registry):
        with pytest.raises(InvalidToolDefinition) as exc:
            validate_tool_definition("get_weather", "", None, registry)
        assert "description is required" in exc.value.errors

    def test_unregistered_tool(self, registry):
        with pytest.raises(InvalidToolDefinition) as exc:
            validate_tool_definition("get_time", "Get time.", None, registry)
        assert "tool not registered" in exc.value.errors

    def test_no_registry_means_unregistered(self):
        with pytest.raises(InvalidToolDefinition) as exc:
            validate_tool_definition("get_weather", "Get weather.", None, None)
        assert "tool not registered" in exc.value.errors

    def test_root_type_must_be_object(self, registry):
        with pytest.raises(InvalidToolDefinition) as exc:
            validate_tool_definition("get_weather", "Get weather.", {"type": "string"}, registry)
        assert "parameters type must be 'object' at root level" in exc.value.errors

    def test_root_type_required(self, registry):
        with pytest.raises(InvalidToolDefinition) as exc:
            validate_tool_definition("get_weather", "Get weather.", {"properties": {}}, registry)
        assert "parameters must have a 'type' field" in exc.value.errors

    def test_parameters_must_be_dict(self, registry):
        with pytest.raises(InvalidToolDefinition):
            validate_tool_definition("get_weather", "Get weather.", ["city"], registry)

    def test_collects_every_error(self, registry):
        with pytest.raises(InvalidToolDefinition) as exc:
            validate_tool_definition("bad name", "", {"type": "string"}, registry)
        assert len(exc.value.errors) == 4


class TestParameterSchema:
    """Tests for recursive parameter schema rules."""

    def test_valid_schema(self):
        assert validate_parameter_schema(weather_schema()) == []

    def test_invalid_type(self):
        errors = validate_parameter_schema(
            weather_schema(properties={"city": {"type": "text"}}, required=[])
        )
        assert errors == ["parameters invalid parameter type: text"]

    def test_all_types_accepted(self):
        properties = {
            name: {"type": name}
            for name in ("string", "number", "integer", "boolean", "null")
        }
        properties["items"] = {"type": "array", "items": {"type": "string"}}
        properties["nested"] = {"type": "object", "properties": {}}
        assert validate_parameter_schema({"type": "object", "properties": properties}) == []

    def test_object_requires_properties(self):
        errors = validate_parameter_schema({"type": "object"})
        assert errors == ["parameters object properties must be an object"]

    def test_property_names_must_be_identifiers(self):
        errors = validate_parameter_schema(
            {"type": "object", "properties": {"city name": {"type": "string"}}}
        )
        assert errors == ["parameters property name 'city name' cannot contain spaces or special characters"]

    def test_property_name_with_trailing_newline(self):
        errors = validate_parameter_schema(
            {"type": "object", "properties": {"city\n": {"type": "string"}}}
        )
        assert errors == ["parameters property name 'city\n' cannot contain spaces or special characters"]

    def test_list_type_is_invalid(self):
        errors = validate_parameter_schema(
            {"type": "object", "properties": {"city": {"type": ["string", "null"]}}}
        )
        assert errors == ["parameters invalid parameter type: ['string', 'null']"]

    def test_object_type_is_invalid(self):
        errors = validate_parameter_schema(
            {"type": "object", "properties": {"city": {"type": {"kind": "string"}}}}
        )
        assert errors == ["parameters invalid parameter type: {'kind': 'string'}"]

    def test_required_entries_must_be_strings(self):
        errors = validate_parameter_schema(weather_schema(required=[["city"]]))
        assert errors == ["parameters required fields must be strings"]

    def test_required_must_be_list(self):
        errors = validate_parameter_schema(weather_schema(required="city"))
        assert errors == ["parameters required must be an array"]

    def test_required_must_exist(self):
        errors = validate_parameter_schema(weather_schema(required=["country"]))
        assert errors == ["parameters required fields must exist in properties"]

    def test_array_requires_items(self):
        errors = validate_parameter_schema(
            {"type": "object", "properties": {"tags": {"type": "array"}}}
        )
        assert errors == ["parameters array must have items definition"]

    def test_array_items_validated_recursively(self):
        errors = validate_parameter_schema(
            {
                "type": "object",
                "properties": {
                    "tags": {"type": "array", "items": {"type": "array", "items": {"type": "blob"}}},
                },
            }
        )
        assert errors == ["parameters invalid parameter type: blob"]

    def test_nested_objects_validated(self):
        errors = validate_parameter_schema(
            {
                "type": "object",
                "properties": {
                    "location": {
                        "type": "object",
                        "properties": {"lat": {"type": "number"}},
                        "required": ["lng"],
                    },
                },
            }
        )
        assert errors == ["parameters required fields must exist in properties"]

    def test_enum_only_on_strings(self):
        errors = validate_parameter_schema(
            {"type": "object", "properties": {"days": {"type": "integer", "enum": ["1", "2"]}}}
        )
        assert errors == ["parameters enum can only be used with string types"]

    def test_enum_must_be_list(self):
        errors = validate_parameter_schema(
            {"type": "object", "properties": {"unit": {"type": "string", "enum": "C"}}}
        )
        assert errors == ["parameters enum must be an array"]

    def test_enum_values_must_be_strings(self):
        errors = validate_parameter_schema(
            {"type": "object", "properties": {"unit": {"type": "string", "enum": ["C", 1]}}}
        )
        assert errors == ["parameters enum values must be strings"]

    def test_description_must_be_string(self):
        errors = validate_parameter_schema(
            {"type": "object", "properties": {"city": {"type": "string", "description": 5}}}
        )
        assert errors == ["parameters description must be a string"]


class TestValidateTool:
    def test_registered_tool_with_handler(self, registry):
        validate_tool(registry.lookup("get_weather"), registry)

    def test_handler_taken_from_registry(self, registry):
        validate_tool(ToolDefinition(name="get_weather", description="Get weather."), registry)

    def test_missing_handler(self):
        registry = ToolRegistry()
        definition = registry.register(ToolDefinition(name="noop", description="Nothing."))
        with pytest.raises(InvalidToolDefinition) as exc:
            validate_tool(definition, registry)
        assert "handler must be provided" in exc.value.errors


class TestValidateMessage:
    """Tests for message shape validation."""

    def test_text_message(self):
        validate_message({"role": "user", "parts": [{"text": "Hello!"}]})

    def test_role_case_insensitive(self):
        validate_message({"role": "Model", "parts": [{"text": "Hi"}]})

    def test_function_call_and_response(self):
        validate_message(
            {"role": "model", "parts": [{"functionCall": {"name": "get_time", "args": {}}}]}
        )
        validate_message(
            {
                "role": "user",
                "parts": [{"functionResponse": {"name": "get_time", "response": {"result": 1}}}],
            }
        )

    def test_invalid_role(self):
        with pytest.raises(InvalidMessage) as exc:
            validate_message({"role": "system", "parts": [{"text": "Hi"}]})
        assert "role" in str(exc.value)

    def test_missing_parts(self):
        with pytest.raises(InvalidMessage):
            validate_message({"role": "user"})

    def test_empty_parts(self):
        with pytest.raises(InvalidMessage):
            validate_message({"role": "user", "parts": []})

    def test_part_without_known_key(self):
        with pytest.raises(InvalidMessage):
            validate_message({"role": "user", "parts": [{"image": "..."}]})

    def test_part_with_two_keys(self):
        with pytest.raises(InvalidMessage):
            validate_message(
                {"role": "model", "parts": [{"text": "Hi", "functionCall": {"name": "x"}}]}
            )

    def test_non_dict_message(self):
        with pytest.raises(InvalidMessage):
            validate_message("hello")


class TestValidateConversation:
    def test_valid_conversation(self):
        validate_conversation(
            [
                {"role": "user", "parts": [{"text": "Hello!"}]},
                {"role": "model", "parts": [{"text": "Hi there!"}]},
                {"role": "user", "parts": [{"text": "How are you?"}]},
            ]
        )

    def test_empty_conversation(self):
        with pytest.raises(InvalidMessage):
            validate_conversation([])

    def test_not_a_list(self):
        with pytest.raises(InvalidMessage):
            validate_conversation({"role": "user", "parts": [{"text": "Hi"}]})

    def test_reports_failing_index(self):
        with pytest.raises(InvalidMessage) as exc:
            validate_conversation(
                [
                    {"role": "user", "parts": [{"text": "Hello!"}]},
                    {"role": "bot", "parts": [{"text": "Hi"}]},
                ]
            )
        assert exc.value.index == 1
        assert "message 1" in exc.value.message
