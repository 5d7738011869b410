"""
Typed schema builders for extraction configs.

Schemas are immutable values: every chained call returns a new node, so a
custom-type marker such as ``date()`` survives ``.describe()``,
``.nullable()`` and ``.optional()``::

    invoice = extend_schema({
        "invoice_number": string().nullable().describe("The invoice number"),
        "invoice_date": date().describe("The invoice date"),
        "total": currency().describe("Total amount"),
        "status": enum("paid", "unpaid"),
        "line_items": array(
            object({
                "description": string(),
                "quantity": integer(),
                "price": number(),
            })
        ).describe("Line items"),
    })

    config = {"schema": invoice, "baseProcessor": "extraction_performance"}

Conversion to the wire format lives in ``extend_client.schema_converter``.
"""

from typing import Any, Dict, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

DateMarker = Literal["date"]
ObjectMarker = Literal["currency", "signature"]


class SchemaNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: Optional[str] = None

    def describe(self, description: str) -> "SchemaNode":
        return self.model_copy(update={"description": description})

    def nullable(self) -> "NullableSchema":
        return NullableSchema(inner=self)

    def optional(self) -> "OptionalSchema":
        return OptionalSchema(inner=self)

    def default(self, value: Any) -> "DefaultSchema":
        return DefaultSchema(inner=self, default_value=value)


class StringSchema(SchemaNode):
    extend_type: Optional[DateMarker] = None


class NumberSchema(SchemaNode):
    is_integer: bool = False

    def integer(self) -> "NumberSchema":
        return self.model_copy(update={"is_integer": True})


class BooleanSchema(SchemaNode):
    pass


class EnumSchema(SchemaNode):
    options: Tuple[str, ...]


class LiteralSchema(SchemaNode):
    value: Any


class ArraySchema(SchemaNode):
    element: SchemaNode


class ObjectSchema(SchemaNode):
    shape: Dict[str, SchemaNode]
    extend_type: Optional[ObjectMarker] = None


class UnionSchema(SchemaNode):
    options: Tuple[SchemaNode, ...]


class NullableSchema(SchemaNode):
    inner: SchemaNode


class OptionalSchema(SchemaNode):
    inner: SchemaNode


class DefaultSchema(SchemaNode):
    inner: SchemaNode
    default_value: Any = None


WRAPPER_TYPES = (NullableSchema, OptionalSchema, DefaultSchema)


def string() -> StringSchema:
    return StringSchema()


def number() -> NumberSchema:
    return NumberSchema()


def integer() -> NumberSchema:
    return NumberSchema(is_integer=True)


def boolean() -> BooleanSchema:
    return BooleanSchema()


def enum(*options: str) -> EnumSchema:
    return EnumSchema(options=tuple(options))


def literal(value: Any) -> LiteralSchema:
    return LiteralSchema(value=value)


def array(element: SchemaNode) -> ArraySchema:
    return ArraySchema(element=element)


def object(shape: Mapping[str, SchemaNode]) -> ObjectSchema:
    return ObjectSchema(shape=dict(shape))


def union(*options: SchemaNode) -> UnionSchema:
    return UnionSchema(options=tuple(options))


def date() -> NullableSchema:
    """ISO date (yyyy-mm-dd) or null; sent as a string tagged extend:type date"""
    return StringSchema(extend_type="date").nullable()


def currency() -> ObjectSchema:
    """Amount plus ISO 4217 currency code, tagged extend:type currency"""
    return ObjectSchema(
        shape={
            "amount": number().nullable(),
            "iso_4217_currency_code": string().nullable(),
        },
        extend_type="currency",
    )


def signature() -> ObjectSchema:
    """Signature block, tagged extend:type signature"""
    return ObjectSchema(
        shape={
            "printed_name": string().nullable(),
            "signature_date": date(),
            "is_signed": boolean().nullable(),
            "title_or_role": string().nullable(),
        },
        extend_type="signature",
    )


class ExtendSchema(BaseModel):
    """A root object schema together with its converted wire JSON schema"""

    model_config = ConfigDict(frozen=True)

    shape: ObjectSchema
    json_schema: Dict[str, Any]


def extend_schema(shape: Mapping[str, SchemaNode]) -> ExtendSchema:
    """
    Builds a root extraction schema from a mapping of field names to schema nodes.

    The wire schema is converted eagerly, so unsupported types fail here with
    a SchemaConversionError naming the offending field path.
    """
    from extend_client.schema_converter import convert

    root = object(shape)
    return ExtendSchema(shape=root, json_schema=convert(root))


def is_extend_schema(value: Any) -> bool:
    return isinstance(value, ExtendSchema)
