"""Entry-function payloads and ABI-driven argument encoding.

Callers describe a call with plain values ("1", "0xabc", True, [..]);
the declared Move parameter types from the module ABI decide how each
value is BCS-encoded.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Sequence, Tuple

from aptos_sdk.bcs import Serializer
from aptos_sdk.transactions import EntryFunction, TransactionArgument
from aptos_sdk.transactions import TransactionPayload as BcsTransactionPayload
from aptos_sdk.type_tag import StructTag, TypeTag

from .address import normalize_address, to_account_address
from .exceptions import ArgumentEncodingError, InvalidAddressError

UINT_BITS = {"u8": 8, "u16": 16, "u32": 32, "u64": 64, "u128": 128, "u256": 256}

STRING_TYPE = "0x1::string::String"
OPTION_PREFIX = "0x1::option::Option<"
OBJECT_PREFIX = "0x1::object::Object<"

FUNGIBLE_TRANSFER_FUNCTION = "0x1::primary_fungible_store::transfer"
FUNGIBLE_METADATA_TYPE = "0x1::fungible_asset::Metadata"


def _freeze(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


@dataclass(frozen=True)
class TransactionPayload:
    """An entry-function call: function id, type arguments, arguments."""

    function_id: str
    type_arguments: Tuple[str, ...] = field(default_factory=tuple)
    function_arguments: Tuple[Any, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        parse_function_id(self.function_id)
        object.__setattr__(self, "type_arguments", tuple(self.type_arguments))
        object.__setattr__(
            self, "function_arguments", tuple(_freeze(a) for a in self.function_arguments)
        )

    @property
    def module_address(self) -> str:
        return parse_function_id(self.function_id)[0]

    @property
    def module_name(self) -> str:
        return parse_function_id(self.function_id)[1]

    @property
    def function_name(self) -> str:
        return parse_function_id(self.function_id)[2]

    def to_dict(self) -> dict[str, Any]:
        return {
            "function": self.function_id,
            "type_arguments": list(self.type_arguments),
            "arguments": [_thaw(a) for a in self.function_arguments],
        }


def _thaw(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


def parse_function_id(function_id: str) -> Tuple[str, str, str]:
    """Split ``<address>::<module>::<function>``."""
    parts = function_id.split("::")
    if len(parts) != 3 or not all(parts):
        raise ArgumentEncodingError("function_id", function_id, "expected address::module::function")
    try:
        address = normalize_address(parts[0])
    except InvalidAddressError as e:
        raise ArgumentEncodingError("function_id", function_id, e.message) from e
    return address, parts[1], parts[2]


def function_id(module_address: str, module_name: str, function_name: str) -> str:
    return f"{module_address}::{module_name}::{function_name}"


def strip_signer_params(params: Iterable[str]) -> List[str]:
    """Drop the leading signer parameters the transaction sender fills."""
    remaining = list(params)
    while remaining and remaining[0].strip() in ("signer", "&signer"):
        remaining.pop(0)
    return remaining


def _inner_type(type_tag: str, prefix: str) -> str:
    if not type_tag.endswith(">"):
        raise ArgumentEncodingError(type_tag, None, "unbalanced generic type")
    return type_tag[len(prefix):-1].strip()


def _to_int(type_tag: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ArgumentEncodingError(type_tag, value, "bool is not an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ArgumentEncodingError(type_tag, value, "not an integer")
    try:
        number = int(value, 0) if isinstance(value, str) and value.startswith("0x") else int(value)
    except (TypeError, ValueError) as e:
        raise ArgumentEncodingError(type_tag, value, "not an integer") from e
    if number < 0 or number >= 1 << UINT_BITS[type_tag]:
        raise ArgumentEncodingError(type_tag, value, "out of range")
    return number


def _to_bool(type_tag: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ArgumentEncodingError(type_tag, value, "not a bool")


def _to_bytes(type_tag: str, value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        if value.startswith("0x"):
            try:
                return bytes.fromhex(value[2:])
            except ValueError as e:
                raise ArgumentEncodingError(type_tag, value, "invalid hex") from e
        return value.encode("utf-8")
    if isinstance(value, (list, tuple)):
        return bytes(_to_int("u8", v) for v in value)
    raise ArgumentEncodingError(type_tag, value, "not bytes")


def serialize_value(serializer: Serializer, type_tag: str, value: Any) -> None:
    """Write ``value`` into ``serializer`` as Move type ``type_tag``."""
    type_tag = type_tag.strip()

    if type_tag == "bool":
        serializer.bool(_to_bool(type_tag, value))
    elif type_tag in UINT_BITS:
        getattr(serializer, type_tag)(_to_int(type_tag, value))
    elif type_tag == "address" or type_tag.startswith(OBJECT_PREFIX):
        if not isinstance(value, str):
            raise ArgumentEncodingError(type_tag, value, "address must be a string")
        try:
            serializer.struct(to_account_address(value))
        except InvalidAddressError as e:
            raise ArgumentEncodingError(type_tag, value, e.message) from e
    elif type_tag == STRING_TYPE:
        if not isinstance(value, str):
            raise ArgumentEncodingError(type_tag, value, "not a string")
        serializer.str(value)
    elif type_tag == "vector<u8>":
        serializer.to_bytes(_to_bytes(type_tag, value))
    elif type_tag.startswith("vector<"):
        if not isinstance(value, (list, tuple)):
            raise ArgumentEncodingError(type_tag, value, "not a list")
        inner = _inner_type(type_tag, "vector<")
        serializer.uleb128(len(value))
        for item in value:
            serialize_value(serializer, inner, item)
    elif type_tag.startswith(OPTION_PREFIX):
        inner = _inner_type(type_tag, OPTION_PREFIX)
        if value is None:
            serializer.uleb128(0)
        else:
            serializer.uleb128(1)
            serialize_value(serializer, inner, value)
    else:
        raise ArgumentEncodingError(type_tag, value, "unsupported parameter type")


def encode_argument(type_tag: str, value: Any) -> TransactionArgument:
    return TransactionArgument(
        value, lambda serializer, v: serialize_value(serializer, type_tag, v)
    )


def parse_type_argument(type_argument: str) -> TypeTag:
    try:
        return TypeTag(StructTag.from_str(type_argument))
    except (ValueError, IndexError, RuntimeError) as e:
        raise ArgumentEncodingError("type_argument", type_argument, "expected a struct type") from e


def build_entry_function(
    payload: TransactionPayload, param_types: Sequence[str]
) -> BcsTransactionPayload:
    """Encode a payload against its ABI parameter types."""
    param_types = strip_signer_params(param_types)
    if len(param_types) != len(payload.function_arguments):
        raise ArgumentEncodingError(
            payload.function_id,
            _thaw(payload.function_arguments),
            f"expected {len(param_types)} arguments, got {len(payload.function_arguments)}",
        )

    address, module, function = parse_function_id(payload.function_id)
    entry = EntryFunction.natural(
        f"{address}::{module}",
        function,
        [parse_type_argument(t) for t in payload.type_arguments],
        [encode_argument(t, v) for t, v in zip(param_types, payload.function_arguments)],
    )
    return BcsTransactionPayload(entry)


def fungible_transfer_payload(
    metadata_address: str, recipient: str, amount: int
) -> TransactionPayload:
    """Transfer of a fungible asset from the sender's primary store."""
    return TransactionPayload(
        function_id=FUNGIBLE_TRANSFER_FUNCTION,
        type_arguments=(FUNGIBLE_METADATA_TYPE,),
        function_arguments=(metadata_address, recipient, str(amount)),
    )
