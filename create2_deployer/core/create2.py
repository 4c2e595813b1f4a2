"""CREATE2 address derivation (EIP-1014).

The deployed address is the last 20 bytes of:
    keccak256(0xff ++ factory ++ salt ++ keccak256(init_code))

Hashing is delegated to a keccak callable so the chain client's
implementation can be injected; eth_utils.keccak is the default.
"""

from typing import Callable, Optional, Union

from eth_utils import keccak as eth_keccak
from eth_utils import to_checksum_address

from ..utils.common import hex_to_bytes, is_hex, strip_0x, to_hex
from ..utils.exceptions import SaltError

Hasher = Callable[[bytes], bytes]

DEFAULT_FACTORY = "0x4e59b44847b379578588920ca78fbf26c0b4956c"
ZERO_SALT = b"\x00" * 32


def compute_create2_address(
    factory: Union[str, bytes],
    salt: bytes,
    init_code: bytes,
    keccak: Optional[Hasher] = None,
) -> bytes:
    """
    Compute the address a CREATE2 factory deploys init_code to.

    Args:
        factory: 20-byte factory address (bytes or hex string)
        salt: 32-byte salt
        init_code: Creation bytecode followed by encoded constructor args
        keccak: Hash function, defaults to eth_utils.keccak

    Returns:
        20-byte deployment address

    Raises:
        ValueError: If factory is not 20 bytes or salt is not 32 bytes

    Example:
        >>> addr = compute_create2_address(bytes(20), bytes(32), b"\\x00")
        >>> to_hex(addr)
        '0x4d1a2e2bb4f88f0250f26ffff098b0b30b26bf38'
    """
    hasher = keccak or eth_keccak
    factory_bytes = hex_to_bytes(factory)

    if len(factory_bytes) != 20:
        raise ValueError(f"Factory must be 20 bytes, got {len(factory_bytes)}")
    if len(salt) != 32:
        raise ValueError(f"Salt must be 32 bytes, got {len(salt)}")

    init_code_hash = bytes(hasher(bytes(init_code)))
    preimage = b"\xff" + factory_bytes + bytes(salt) + init_code_hash
    return bytes(hasher(preimage))[12:]


def parse_salt(value: Optional[Union[str, int, bytes]]) -> bytes:
    """
    Canonicalize a salt to 32 bytes.

    Hex strings are read as big-endian numbers, so `0x1` becomes
    31 zero bytes followed by 0x01. None yields the zero salt.

    Raises:
        SaltError: Non-hex input, negative integer or more than 32 bytes
    """
    if value is None:
        return ZERO_SALT

    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, int):
        if value < 0:
            raise SaltError(f"Salt must not be negative: {value}")
        raw = value.to_bytes((value.bit_length() + 7) // 8 or 1, "big")
    else:
        text = value.strip()
        digits = strip_0x(text)
        if not digits or not is_hex(digits):
            raise SaltError(f"Salt must be a hex value, got '{value}'")
        if len(digits) % 2:
            digits = "0" + digits
        raw = bytes.fromhex(digits)

    if len(raw) > 32:
        raise SaltError(f"Salt must be at most 32 bytes, got {len(raw)}")
    return raw.rjust(32, b"\x00")


def build_init_code(bytecode: bytes, encoded_args: Union[str, bytes] = b"") -> bytes:
    """Creation bytecode followed by the encoded constructor arguments"""
    return bytes(bytecode) + hex_to_bytes(encoded_args or b"")


def build_factory_calldata(salt: bytes, init_code: bytes) -> bytes:
    """Calldata for the deterministic deployment proxy: salt ++ init_code"""
    if len(salt) != 32:
        raise ValueError(f"Salt must be 32 bytes, got {len(salt)}")
    return bytes(salt) + bytes(init_code)


def format_salt(salt: bytes) -> str:
    return to_hex(salt)


def to_checksum(address: bytes) -> str:
    """EIP-55 checksum form of a 20-byte address"""
    return to_checksum_address(to_hex(address))
