import re
from typing import Union

HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


def strip_0x(value: str) -> str:
    """Remove a leading 0x/0X prefix"""
    if value[:2] in ("0x", "0X"):
        return value[2:]
    return value


def is_hex(value: str) -> bool:
    """Check whether a string is hex digits, with or without 0x prefix"""
    return isinstance(value, str) and bool(HEX_RE.match(strip_0x(value)))


def hex_to_bytes(value: Union[str, bytes]) -> bytes:
    """Convert 0x-prefixed (or bare) hex to bytes; bytes pass through"""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return bytes.fromhex(strip_0x(value.strip()))


def to_hex(value: bytes) -> str:
    """Render bytes as lower-case 0x-prefixed hex"""
    return "0x" + bytes(value).hex()


def ceil32(length: int) -> int:
    """Round a byte length up to the next multiple of 32"""
    return length if length % 32 == 0 else length + 32 - (length % 32)
