"""
Typed data — V1 signature hashing and V3 (EIP-712) schema validation.
"""
from typing import Any

import orjson
from eth_abi.packed import encode_packed
from eth_utils import keccak
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from ..exceptions import ValidationError

INVALID_V1 = "Expected EIP712 typed data."


def _coerce_value(type_: str, value: Any) -> Any:
    """Bring a V1 entry value into the shape ``encode_packed`` expects."""
    if type_.endswith("]"):
        return value
    if type_.startswith(("uint", "int")):
        if isinstance(value, str):
            return int(value, 16) if value.lower().startswith("0x") else int(value)
        return int(value)
    if type_.startswith("bytes"):
        if isinstance(value, str):
            if value.lower().startswith("0x"):
                return bytes.fromhex(value[2:])
            return value.encode("utf-8")
        return bytes(value)
    if type_ == "string":
        return str(value)
    return value


def typed_signature_hash(typed_data: Any) -> bytes:
    """Hash V1 typed data: a list of ``{"type", "name", "value"}`` entries.

    hash = keccak(keccak(schema) ++ keccak(values)), where the schema is
    the tight packing of ``"<type> <name>"`` strings.

    Raises:
        ValidationError: If the data is not a non-empty list of entries
            that can be packed.
    """
    if not isinstance(typed_data, list) or not typed_data:
        raise ValidationError(INVALID_V1)
    try:
        types = [entry["type"] for entry in typed_data]
        schema = [f"{entry['type']} {entry['name']}" for entry in typed_data]
        values = [
            _coerce_value(entry["type"], entry["value"]) for entry in typed_data
        ]
        if not all(isinstance(t, str) and t for t in types):
            raise ValidationError(INVALID_V1)
        schema_hash = keccak(encode_packed(["string"] * len(schema), schema))
        values_hash = keccak(encode_packed(types, values))
    except ValidationError:
        raise
    except Exception as err:
        raise ValidationError(INVALID_V1) from err
    return keccak(schema_hash + values_hash)


class TypedDataField(BaseModel):
    name: str
    type: str


class TypedDataV3(BaseModel):
    """EIP-712 typed data document."""

    types: dict[str, list[TypedDataField]]
    primary_type: str = Field(alias="primaryType")
    domain: dict[str, Any]
    message: dict[str, Any]


def parse_typed_data_v3(data: Any) -> dict[str, Any]:
    """Parse and validate a V3 typed data JSON string.

    Returns:
        The parsed document, ready for EIP-712 encoding.

    Raises:
        ValidationError: If data is not a JSON string conforming to the
            EIP-712 schema.
    """
    if not data or not isinstance(data, str):
        raise ValidationError(
            f'Invalid message "data": {data!r} must be a valid JSON string.'
        )
    try:
        parsed = orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise ValidationError(
            "Data must be passed as a valid JSON string."
        ) from err
    try:
        TypedDataV3.model_validate(parsed)
    except SchemaError as err:
        raise ValidationError("Data must conform to EIP-712 schema.") from err
    return parsed
