"""
Ethereum ABI encoder for constructor arguments

Encodes typed argument tokens into the canonical head/tail layout that
Solidity constructors decode from the end of the init code.

Design Notes:
- Every value is encoded on its own first; sequences (top-level
  arguments, arrays, tuples) then place static encodings inline and
  dynamic encodings in the tail behind a 32-byte offset
- Tokens may be strings from the CLI or native Python values
  (int, bool, bytes, list/tuple)
- Errors name the top-level argument index, its declared type and the
  path to the offending nested element
"""

import re
from typing import Any, List, Sequence

from .abi_types import AbiParameter, AbiType, ArrayType, PrimitiveType, TupleType
from .tokenizer import RawArguments, split_arguments, split_literal
from ..utils.common import ceil32, is_hex, strip_0x, to_hex
from ..utils.exceptions import ArgumentError, EncodingError

INT_RE = re.compile(r"^(?P<unsigned>u?)int(?P<bits>\d+)$")
FIXED_BYTES_RE = re.compile(r"^bytes(?P<size>\d+)$")
SCIENTIFIC_RE = re.compile(r"^(?P<mantissa>\d+)e(?P<exponent>\d+)$")

WORD = 32


class InvalidValue(ValueError):
    """Raised below the top level; converted to EncodingError with context"""

    def __init__(self, message: str, path: str = ""):
        self.path = path
        super().__init__(message)


def _word(value: int) -> bytes:
    return value.to_bytes(WORD, "big")


def _pad_right(data: bytes) -> bytes:
    return data + b"\x00" * (ceil32(len(data)) - len(data))


def _parse_integer(value: Any, path: str) -> int:
    if isinstance(value, bool):
        raise InvalidValue(f"expected an integer, got boolean {value}", path)
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise InvalidValue(f"expected an integer, got {type(value).__name__}", path)

    text = value.strip().replace("_", "")
    negative = text.startswith("-")
    body = text[1:] if negative else text

    if body[:2].lower() == "0x" and len(body) > 2 and is_hex(body):
        number = int(body[2:], 16)
    elif body.isdigit():
        number = int(body)
    elif SCIENTIFIC_RE.match(body):
        match = SCIENTIFIC_RE.match(body)
        number = int(match.group("mantissa")) * 10 ** int(match.group("exponent"))
    else:
        raise InvalidValue(f"'{value}' is not a number", path)

    return -number if negative else number


def _parse_hex_bytes(value: Any, path: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise InvalidValue(f"expected hex bytes, got {type(value).__name__}", path)
    text = value.strip()
    if not is_hex(text):
        raise InvalidValue(f"'{value}' is not valid hex", path)
    digits = strip_0x(text)
    if len(digits) % 2:
        raise InvalidValue(f"'{value}' has an odd number of hex digits", path)
    return bytes.fromhex(digits)


def _encode_integer(abi_type: str, bits: int, signed: bool, value: Any, path: str) -> bytes:
    number = _parse_integer(value, path)
    if signed:
        low, high = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        low, high = 0, (1 << bits) - 1
    if not low <= number <= high:
        raise InvalidValue(f"{number} is out of range for {abi_type}", path)
    return _word(number % (1 << 256))


def _encode_address(value: Any, path: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str) and value.strip()[:2].lower() == "0x":
        raw = _parse_hex_bytes(value, path)
    else:
        raise InvalidValue(f"'{value}' is not a 0x-prefixed address", path)
    if len(raw) != 20:
        raise InvalidValue(f"address must be 20 bytes, got {len(raw)}", path)
    return b"\x00" * 12 + raw


def _encode_bool(value: Any, path: str) -> bytes:
    if isinstance(value, bool):
        return _word(int(value))
    if isinstance(value, int) and value in (0, 1):
        return _word(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("true", "1"):
            return _word(1)
        if text in ("false", "0"):
            return _word(0)
    raise InvalidValue(f"'{value}' is not a boolean", path)


def _encode_primitive(abi_type: PrimitiveType, value: Any, path: str) -> bytes:
    name = abi_type.canonical

    match = INT_RE.match(name)
    if match:
        bits = int(match.group("bits"))
        if bits % 8 or not 8 <= bits <= 256:
            raise InvalidValue(f"unsupported integer width in {name}", path)
        return _encode_integer(name, bits, not match.group("unsigned"), value, path)

    if name == "address":
        return _encode_address(value, path)

    if name == "bool":
        return _encode_bool(value, path)

    match = FIXED_BYTES_RE.match(name)
    if match:
        size = int(match.group("size"))
        if not 1 <= size <= 32:
            raise InvalidValue(f"unsupported fixed bytes size in {name}", path)
        data = _parse_hex_bytes(value, path)
        if len(data) > size:
            raise InvalidValue(f"{len(data)} bytes do not fit in {name}", path)
        return data + b"\x00" * (WORD - len(data))

    if name == "bytes":
        data = _parse_hex_bytes(value, path)
        return _word(len(data)) + _pad_right(data)

    if name == "string":
        if not isinstance(value, str):
            raise InvalidValue(f"expected a string, got {type(value).__name__}", path)
        data = value.encode("utf-8")
        return _word(len(data)) + _pad_right(data)

    raise InvalidValue(f"unsupported ABI type '{name}'", path)


def _as_items(value: Any, path: str) -> List[Any]:
    if isinstance(value, str):
        try:
            return split_literal(value)
        except ArgumentError as e:
            raise InvalidValue(e.message, path)
    if isinstance(value, (list, tuple)):
        return list(value)
    raise InvalidValue(f"expected an array or tuple literal, got {type(value).__name__}", path)


def _assemble(types: Sequence[AbiType], encoded: Sequence[bytes]) -> bytes:
    """Lay out individually encoded members as heads followed by tails"""
    offset = sum(abi_type.head_size() for abi_type in types)
    heads = []
    tails = []
    for abi_type, data in zip(types, encoded):
        if abi_type.is_dynamic:
            heads.append(_word(offset))
            tails.append(data)
            offset += len(data)
        else:
            heads.append(data)
    return b"".join(heads) + b"".join(tails)


def _encode_sequence(types: Sequence[AbiType], values: Sequence[Any], path: str) -> bytes:
    """Head/tail encode values as the members of a tuple"""
    return _assemble(types, [
        _encode(abi_type, value, f"{path}[{i}]")
        for i, (abi_type, value) in enumerate(zip(types, values))
    ])


def _encode(abi_type: AbiType, value: Any, path: str) -> bytes:
    if isinstance(abi_type, PrimitiveType):
        return _encode_primitive(abi_type, value, path)

    if isinstance(abi_type, ArrayType):
        items = _as_items(value, path)
        if abi_type.length is not None and len(items) != abi_type.length:
            raise InvalidValue(
                f"expected {abi_type.length} elements for {abi_type.canonical}, got {len(items)}",
                path
            )
        body = _encode_sequence([abi_type.element] * len(items), items, path)
        if abi_type.length is None:
            return _word(len(items)) + body
        return body

    if isinstance(abi_type, TupleType):
        items = _as_items(value, path)
        if len(items) != len(abi_type.components):
            raise InvalidValue(
                f"expected {len(abi_type.components)} tuple members for "
                f"{abi_type.canonical}, got {len(items)}",
                path
            )
        return _encode_sequence(abi_type.types, items, path)

    raise InvalidValue(f"unknown ABI type node {abi_type!r}", path)


def encode_arguments(types: Sequence[AbiType], values: Sequence[Any]) -> bytes:
    """
    ABI-encode values as a top-level argument list.

    Args:
        types: Declared parameter types, in order
        values: One token or native value per type

    Returns:
        Encoded bytes (empty for an empty argument list)

    Raises:
        EncodingError: A value does not fit its type or the counts differ
    """
    if len(types) != len(values):
        raise EncodingError(
            f"Expected {len(types)} values, got {len(values)}"
        )

    encoded = []
    for index, (abi_type, value) in enumerate(zip(types, values)):
        try:
            encoded.append(_encode(abi_type, value, ""))
        except InvalidValue as e:
            location = f" at {e.path}" if e.path else ""
            raise EncodingError(
                f"Argument {index} ({abi_type.canonical}){location}: {e}",
                index=index,
                abi_type=abi_type.canonical,
                cause=e
            )
    return _assemble(types, encoded)


def encode_constructor_args(params: Sequence[AbiParameter], raw: RawArguments) -> str:
    """
    Tokenize and encode constructor arguments.

    Returns:
        0x-prefixed hex of the encoded arguments ("0x" when there are none)

    Raises:
        ArgumentCountMismatch: Token count differs from the parameter count
        EncodingError: A token does not fit its declared type
    """
    tokens = split_arguments(raw, len(params))
    return to_hex(encode_arguments([p.type for p in params], tokens))
