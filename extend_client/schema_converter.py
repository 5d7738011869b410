"""
Converts typed schemas to Extend's JSON Schema format.

The API validates schemas thoroughly (nesting limits, property counts, key
format); this module only handles the structural translation:

- every object lists all of its keys as required and sets
  ``additionalProperties: false``; optionality is expressed through null
- primitive fields are always ``[type, "null"]`` unions
- array items follow stricter rules: primitives are bare, enums and literals
  are rejected
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

from loguru import logger

from extend_client.errors import SchemaConversionError
from extend_client.schema import (
    WRAPPER_TYPES,
    ArraySchema,
    BooleanSchema,
    EnumSchema,
    ExtendSchema,
    LiteralSchema,
    NullableSchema,
    NumberSchema,
    ObjectSchema,
    SchemaNode,
    StringSchema,
)

JSONSchema = Dict[str, Any]

CURRENCY_PROPERTIES = {
    "amount": {"type": ["number", "null"]},
    "iso_4217_currency_code": {"type": ["string", "null"]},
}

SIGNATURE_PROPERTIES = {
    "printed_name": {"type": ["string", "null"]},
    "signature_date": {"type": ["string", "null"], "extend:type": "date"},
    "is_signed": {"type": ["boolean", "null"]},
    "title_or_role": {"type": ["string", "null"]},
}


def unwrap(node: SchemaNode) -> Tuple[Any, bool, Optional[str]]:
    """
    Strips nullable/optional/default wrappers.

    Returns the inner node, whether nullability was declared anywhere in the
    chain, and the first non-empty description found walking outside in.
    """
    current: Any = node
    is_nullable = False
    description = None

    while isinstance(current, WRAPPER_TYPES):
        description = description or current.description
        if isinstance(current, NullableSchema):
            is_nullable = True
        current = current.inner

    if isinstance(current, SchemaNode):
        description = description or current.description
    return current, is_nullable, description


def _type_name(node: Any) -> str:
    if isinstance(node, SchemaNode):
        return type(node).__name__.replace("Schema", "").lower()
    return type(node).__name__


def _with_description(schema: JSONSchema, description: Optional[str]) -> JSONSchema:
    if description:
        schema["description"] = description
    return schema


def _custom_object(extend_type: str) -> JSONSchema:
    properties = CURRENCY_PROPERTIES if extend_type == "currency" else SIGNATURE_PROPERTIES
    return {
        "type": "object",
        "extend:type": extend_type,
        "properties": {key: dict(value) for key, value in properties.items()},
        "required": list(properties),
        "additionalProperties": False,
    }


def convert(schema: ObjectSchema) -> JSONSchema:
    """
    Converts a root object schema to the wire format.

    Raises:
        SchemaConversionError: the root is not an object, or a field uses a
            type the wire format cannot express (the error carries its path)
    """
    root, _, _ = unwrap(schema)
    if not isinstance(root, ObjectSchema):
        raise SchemaConversionError(
            f"Root schema must be an object, got {_type_name(root)}"
        )

    properties: Dict[str, JSONSchema] = {}
    required: List[str] = []
    for key, field in root.shape.items():
        properties[key] = convert_field(field, [key])
        required.append(key)

    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


to_extend_json_schema = convert


def convert_field(node: SchemaNode, path: List[str]) -> JSONSchema:
    inner, _, description = unwrap(node)

    # Custom markers win over the structural type they are built on
    if isinstance(inner, StringSchema) and inner.extend_type == "date":
        return _with_description(
            {"type": ["string", "null"], "extend:type": "date"}, description
        )

    if isinstance(inner, ObjectSchema) and inner.extend_type is not None:
        return _with_description(_custom_object(inner.extend_type), description)

    if isinstance(inner, StringSchema):
        return _with_description({"type": ["string", "null"]}, description)

    if isinstance(inner, NumberSchema):
        kind = "integer" if inner.is_integer else "number"
        return _with_description({"type": [kind, "null"]}, description)

    if isinstance(inner, BooleanSchema):
        return _with_description({"type": ["boolean", "null"]}, description)

    if isinstance(inner, EnumSchema):
        values: List[Optional[str]] = []
        for option in inner.options:
            if option not in values:
                values.append(option)
        if None not in values:
            values.append(None)
        return _with_description({"enum": values}, description)

    if isinstance(inner, ArraySchema):
        items = convert_array_item(inner.element, path)
        return _with_description({"type": "array", "items": items}, description)

    if isinstance(inner, ObjectSchema):
        return convert_object(inner, path, description)

    if isinstance(inner, LiteralSchema):
        if isinstance(inner.value, str):
            return _with_description({"enum": [inner.value, None]}, description)
        raise SchemaConversionError(
            f"Unsupported literal type: {type(inner.value).__name__}", path
        )

    raise SchemaConversionError(f"Unsupported schema type: {_type_name(inner)}", path)


def convert_array_item(node: SchemaNode, path: List[str]) -> JSONSchema:
    """Array items are never nullable and must be objects or primitives"""
    inner, _, _ = unwrap(node)

    if isinstance(inner, StringSchema) and inner.extend_type == "date":
        return {"type": "string", "extend:type": "date"}

    if isinstance(inner, ObjectSchema) and inner.extend_type is not None:
        return _custom_object(inner.extend_type)

    if isinstance(inner, StringSchema):
        return {"type": "string"}

    if isinstance(inner, NumberSchema):
        return {"type": "integer" if inner.is_integer else "number"}

    if isinstance(inner, BooleanSchema):
        return {"type": "boolean"}

    if isinstance(inner, ObjectSchema):
        return convert_object(inner, path)

    raise SchemaConversionError(
        f"Unsupported array item type: {_type_name(inner)}. "
        "Array items must be objects or primitives (string, number, integer, boolean).",
        path,
    )


def convert_object(
    node: ObjectSchema, path: List[str], description: Optional[str] = None
) -> JSONSchema:
    properties: Dict[str, JSONSchema] = {}
    required: List[str] = []
    for key, field in node.shape.items():
        properties[key] = convert_field(field, path + [key])
        required.append(key)

    return _with_description(
        {
            "type": "object",
            "properties": properties,
            "required": required,
            "additionalProperties": False,
        },
        description,
    )


def convert_typed_config(config: Mapping[str, Any]) -> Dict[str, Any]:
    """Replaces a typed ``schema`` entry of an extract config with its wire JSON schema"""
    converted = dict(config)
    schema = converted.get("schema")
    if isinstance(schema, ExtendSchema):
        converted["schema"] = schema.json_schema
    elif isinstance(schema, SchemaNode):
        converted["schema"] = convert(schema)
    else:
        return converted
    logger.debug(f"Converted typed schema with {len(converted['schema']['properties'])} fields")
    return converted


def convert_extract_request(request: Mapping[str, Any]) -> Dict[str, Any]:
    """Converts typed schemas in ``config`` and ``extractor.overrideConfig``"""
    converted = dict(request)

    config = converted.get("config")
    if isinstance(config, Mapping):
        converted["config"] = convert_typed_config(config)

    extractor = converted.get("extractor")
    if isinstance(extractor, Mapping) and isinstance(
        extractor.get("overrideConfig"), Mapping
    ):
        converted["extractor"] = {
            **extractor,
            "overrideConfig": convert_typed_config(extractor["overrideConfig"]),
        }

    return converted
