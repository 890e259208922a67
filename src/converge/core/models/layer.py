"""Typed attribute table of OpsWorks layer types.

The OpsWorks API has a single "layer" concept whose type-specific options are
packed into one string-keyed, string-valued `Attributes` map. Each layer type
declares a table of `LayerAttribute` rows; the generic `encode_attributes` /
`decode_attributes` routines consult that table, and a per-type codec table,
to move values between typed fields and the API map.
"""

from enum import StrEnum
from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional

from pydantic import BaseModel, Field

from converge.core.exceptions import LayerAttributeError


class AttributeType(StrEnum):
    string = "string"
    int = "int"
    bool = "bool"


class LayerAttribute(BaseModel):
    """One row of a layer type's attribute table.

    Attributes:
        api_name: Key in the API `Attributes` map (e.g. HaproxyStatsUrl)
        type: Semantic type the string value is coerced to
        default: Value used when the caller leaves the field unset
        required: Caller must supply a value
        force_new: Changing the value requires a new layer
        write_only: The API answers with a placeholder; never read it back
    """

    api_name: str
    type: AttributeType = AttributeType.string
    default: Any = None
    required: bool = False
    force_new: bool = False
    write_only: bool = False

    model_config = {"frozen": True}


class LayerType(BaseModel):
    """A concrete layer resource type (one `aws_opsworks_*_layer`)."""

    type_name: str
    default_layer_name: str = ""
    attributes: Dict[str, LayerAttribute] = Field(default_factory=dict)
    custom_short_name: bool = False

    model_config = {"frozen": True}

    @property
    def force_new_keys(self) -> set[str]:
        return {k for k, a in self.attributes.items() if a.force_new}

    @property
    def write_only_keys(self) -> set[str]:
        return {k for k, a in self.attributes.items() if a.write_only}


def _encode_int(value: Any) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return str(value)


def _encode_bool(value: Any) -> Optional[str]:
    if not isinstance(value, bool):
        return None
    return "true" if value else "false"


def _decode_int(raw: str) -> Optional[int]:
    try:
        return int(raw)
    except ValueError:
        return None


class _Codec(NamedTuple):
    zero: Any
    expects: str
    encode: Callable[[Any], Optional[str]]  # None: value has the wrong type
    decode: Callable[[str], Any]


_CODECS = {
    AttributeType.string: _Codec("", "a string", str, str),
    AttributeType.int: _Codec(0, "an int", _encode_int, _decode_int),
    AttributeType.bool: _Codec(False, "a bool", _encode_bool, lambda raw: raw != "false"),
}


def encode_attributes(layer_type: LayerType, values: Mapping[str, Any]) -> Dict[str, str]:
    """Pack typed attribute values into the API `Attributes` map.

    Every row of the table is emitted. Unset values take the row default, or
    the type's zero value when there is none; an unset required value raises
    LayerAttributeError.
    """
    unknown = set(values) - set(layer_type.attributes)
    if unknown:
        raise LayerAttributeError(
            f"unknown OpsWorks {layer_type.type_name} layer attributes: {', '.join(sorted(unknown))}"
        )

    api_attributes: Dict[str, str] = {}
    for key, attr in layer_type.attributes.items():
        codec = _CODECS[attr.type]
        value = values.get(key)
        if value is None:
            if attr.required:
                raise LayerAttributeError(
                    f"OpsWorks {layer_type.type_name} layer attribute ({key}) is required"
                )
            value = attr.default if attr.default is not None else codec.zero

        encoded = codec.encode(value)
        if encoded is None:
            raise LayerAttributeError(
                f"OpsWorks {layer_type.type_name} layer attribute ({key}) expects {codec.expects}, got {value!r}"
            )
        api_attributes[attr.api_name] = encoded
    return api_attributes


def decode_attributes(
    layer_type: LayerType, api_attributes: Optional[Mapping[str, Optional[str]]]
) -> Dict[str, Any]:
    """Unpack the API `Attributes` map into typed values.

    Write-only rows are skipped entirely (callers keep what they already have).
    Absent keys and ints that do not parse decode to None; a bool is true
    unless the API says "false".
    """
    api_attributes = api_attributes or {}
    values: Dict[str, Any] = {}
    for key, attr in layer_type.attributes.items():
        if attr.write_only:
            continue

        raw = api_attributes.get(attr.api_name)
        values[key] = None if raw is None else _CODECS[attr.type].decode(raw)
    return values
