"""
ABI type descriptors for constructor parameters

Turns the `type` / `components` fields of a compiled artifact's constructor
entry into a recursive AbiType tree the encoder walks.

Design Notes:
- Array suffixes are peeled from the right, so `uint256[2][]` is a dynamic
  array whose element is `uint256[2]`
- Tuples come either from `tuple` plus a components list or from an inline
  signature such as `(string,uint256)`
- Primitive names are not validated here; the encoder rejects names it
  cannot map
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..utils.exceptions import SchemaError

MAX_TYPE_DEPTH = 32

ARRAY_SUFFIX_RE = re.compile(r"^(?P<base>.*)\[(?P<length>[^\[\]]*)\]$")
IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

TYPE_ALIASES = {
    "uint": "uint256",
    "int": "int256",
    "byte": "bytes1",
    "fixed": "fixed128x18",
    "ufixed": "ufixed128x18",
}


class AbiType:
    """Base class for ABI type tree nodes"""

    @property
    def canonical(self) -> str:
        raise NotImplementedError

    @property
    def is_dynamic(self) -> bool:
        raise NotImplementedError

    def head_size(self) -> int:
        """Bytes this type occupies in its enclosing head section"""
        return 32

    def __str__(self) -> str:
        return self.canonical


@dataclass(frozen=True)
class PrimitiveType(AbiType):
    name: str

    @property
    def canonical(self) -> str:
        return TYPE_ALIASES.get(self.name, self.name)

    @property
    def is_dynamic(self) -> bool:
        return self.canonical in ("bytes", "string")


@dataclass(frozen=True)
class ArrayType(AbiType):
    element: AbiType
    length: Optional[int] = None

    @property
    def canonical(self) -> str:
        suffix = "" if self.length is None else str(self.length)
        return f"{self.element.canonical}[{suffix}]"

    @property
    def is_dynamic(self) -> bool:
        return self.length is None or self.element.is_dynamic

    def head_size(self) -> int:
        if self.is_dynamic:
            return 32
        return self.length * self.element.head_size()


@dataclass(frozen=True)
class TupleType(AbiType):
    components: Tuple[Tuple[str, AbiType], ...]

    @property
    def canonical(self) -> str:
        return "(" + ",".join(t.canonical for _, t in self.components) + ")"

    @property
    def is_dynamic(self) -> bool:
        return any(t.is_dynamic for _, t in self.components)

    def head_size(self) -> int:
        if self.is_dynamic:
            return 32
        return sum(t.head_size() for _, t in self.components)

    @property
    def types(self) -> List[AbiType]:
        return [t for _, t in self.components]


@dataclass(frozen=True)
class AbiParameter:
    """One constructor input: position, declared name and parsed type"""
    index: int
    name: str
    type: AbiType


def _split_inline_members(body: str, type_str: str) -> List[str]:
    """Split the inside of `(a,b[],(c,d))` on top-level commas"""
    members = []
    depth = 0
    current = []
    for char in body:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SchemaError(f"Unbalanced parentheses in type '{type_str}'",
                                  type_str=type_str)
        if char == "," and depth == 0:
            members.append("".join(current))
            current = []
        else:
            current.append(char)
    if depth != 0:
        raise SchemaError(f"Unbalanced parentheses in type '{type_str}'",
                          type_str=type_str)
    members.append("".join(current))
    return members


def parse_type(
    type_str: str,
    components: Optional[Sequence[Dict[str, Any]]] = None,
    _depth: int = 0
) -> AbiType:
    """
    Parse an ABI type string into an AbiType tree.

    Args:
        type_str: Type as written in the ABI, e.g. `uint256`, `tuple[]`,
            `(string,uint256)`
        components: Components list for `tuple` types, applied to the
            innermost element when array suffixes are present

    Returns:
        Parsed AbiType

    Raises:
        SchemaError: Malformed suffix, missing tuple components, or nesting
            deeper than MAX_TYPE_DEPTH
    """
    if _depth > MAX_TYPE_DEPTH:
        raise SchemaError(
            f"Type nesting exceeds maximum depth of {MAX_TYPE_DEPTH}",
            type_str=type_str
        )
    if not isinstance(type_str, str) or not type_str.strip():
        raise SchemaError("Empty ABI type", type_str=type_str)

    type_str = type_str.strip()

    if type_str.endswith("]"):
        match = ARRAY_SUFFIX_RE.match(type_str)
        if match is None:
            raise SchemaError(f"Malformed array suffix in type '{type_str}'",
                              type_str=type_str)
        length_text = match.group("length").strip()
        length = None
        if length_text:
            if not length_text.isdigit() or int(length_text) == 0:
                raise SchemaError(
                    f"Invalid fixed array length '{length_text}' in type '{type_str}'",
                    type_str=type_str
                )
            length = int(length_text)
        element = parse_type(match.group("base"), components, _depth + 1)
        return ArrayType(element=element, length=length)

    if type_str.startswith("("):
        if not type_str.endswith(")"):
            raise SchemaError(f"Malformed tuple type '{type_str}'", type_str=type_str)
        body = type_str[1:-1]
        if not body.strip():
            raise SchemaError(f"Tuple type '{type_str}' has no components",
                              type_str=type_str)
        members = _split_inline_members(body, type_str)
        return TupleType(components=tuple(
            ("", parse_type(member, None, _depth + 1)) for member in members
        ))

    if "[" in type_str or "]" in type_str:
        raise SchemaError(f"Malformed array suffix in type '{type_str}'",
                          type_str=type_str)

    if type_str == "tuple":
        if not components:
            raise SchemaError("Tuple type is missing its components",
                              type_str=type_str)
        return TupleType(components=tuple(
            _parse_component(component, _depth + 1) for component in components
        ))

    if not IDENTIFIER_RE.match(type_str):
        raise SchemaError(f"Invalid type name '{type_str}'", type_str=type_str)

    return PrimitiveType(name=type_str)


def _parse_component(entry: Dict[str, Any], depth: int) -> Tuple[str, AbiType]:
    if not isinstance(entry, dict) or "type" not in entry:
        raise SchemaError(f"ABI component without a type: {entry!r}")
    return entry.get("name", ""), parse_type(entry["type"], entry.get("components"), depth)


def parse_param(entry: Dict[str, Any], index: int = 0) -> AbiParameter:
    """Parse one ABI input entry (`{"name", "type", "components"}`)"""
    name, abi_type = _parse_component(entry, 0)
    return AbiParameter(index=index, name=name, type=abi_type)


def find_constructor(abi: Sequence[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Return the constructor entry of an ABI, or None"""
    for entry in abi:
        if isinstance(entry, dict) and entry.get("type") == "constructor":
            return entry
    return None


def parse_constructor(abi: Sequence[Dict[str, Any]]) -> Optional[List[AbiParameter]]:
    """
    Parse the constructor inputs of a contract ABI.

    Returns:
        Ordered parameter list, or None if the ABI declares no constructor
    """
    constructor = find_constructor(abi)
    if constructor is None:
        return None
    return [parse_param(entry, i) for i, entry in enumerate(constructor.get("inputs") or [])]


def signature(params: Sequence[AbiParameter]) -> str:
    """Canonical `(t1,t2,...)` signature of a parameter list"""
    return "(" + ",".join(p.type.canonical for p in params) + ")"
