"""
Unit tests for ABI type parsing
"""

import pytest

from create2_deployer.core.abi_types import (
    MAX_TYPE_DEPTH,
    ArrayType,
    PrimitiveType,
    TupleType,
    find_constructor,
    parse_constructor,
    parse_param,
    parse_type,
    signature,
)
from create2_deployer.utils.exceptions import SchemaError


class TestParseType:
    """parse_type"""

    def test_primitives(self):
        assert parse_type("uint256") == PrimitiveType("uint256")
        assert parse_type("uint").canonical == "uint256"
        assert parse_type("byte").canonical == "bytes1"
        assert not parse_type("address").is_dynamic
        assert parse_type("string").is_dynamic
        assert parse_type("bytes").is_dynamic

    def test_array_suffixes_peel_from_the_right(self):
        """uint256[2][] is a dynamic array of uint256[2]"""
        parsed = parse_type("uint256[2][]")

        assert isinstance(parsed, ArrayType)
        assert parsed.length is None
        assert parsed.element == ArrayType(PrimitiveType("uint256"), 2)
        assert parsed.canonical == "uint256[2][]"
        assert parsed.is_dynamic

    def test_static_array_head_size(self):
        parsed = parse_type("uint8[3]")

        assert not parsed.is_dynamic
        assert parsed.head_size() == 96

    def test_fixed_array_of_dynamic_elements_is_dynamic(self):
        parsed = parse_type("string[2]")

        assert parsed.is_dynamic
        assert parsed.head_size() == 32

    def test_tuple_with_components(self):
        parsed = parse_type("tuple[]", components=[
            {"name": "id", "type": "uint256"},
            {"name": "tags", "type": "string[]"},
        ])

        assert isinstance(parsed, ArrayType)
        assert isinstance(parsed.element, TupleType)
        assert parsed.canonical == "(uint256,string[])[]"
        assert [name for name, _ in parsed.element.components] == ["id", "tags"]

    def test_inline_tuple(self):
        parsed = parse_type("(string,(uint8,bool)[],address)")

        assert isinstance(parsed, TupleType)
        assert parsed.canonical == "(string,(uint8,bool)[],address)"
        assert parsed.is_dynamic

    def test_static_tuple_head_size(self):
        parsed = parse_type("(uint256,address,bool)")

        assert not parsed.is_dynamic
        assert parsed.head_size() == 96

    @pytest.mark.parametrize("type_str", [
        "",
        "uint256[",
        "uint256]",
        "uint256[0]",
        "uint256[x]",
        "uint256[-1]",
        "(uint256",
        "()",
        "tuple",
        "uint-8",
    ])
    def test_malformed_types(self, type_str):
        with pytest.raises(SchemaError):
            parse_type(type_str)

    def test_depth_guard(self):
        nested = "uint256" + "[]" * (MAX_TYPE_DEPTH + 2)

        with pytest.raises(SchemaError, match="maximum depth"):
            parse_type(nested)


class TestConstructor:
    """Constructor lookup and parameter parsing"""

    def test_no_constructor(self):
        abi = [{"type": "function", "name": "f", "inputs": []}]

        assert find_constructor(abi) is None
        assert parse_constructor(abi) is None

    def test_constructor_without_inputs(self):
        assert parse_constructor([{"type": "constructor", "inputs": []}]) == []

    def test_parameters_keep_order(self):
        abi = [{"type": "constructor", "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "amounts", "type": "uint256[]"},
        ]}]

        params = parse_constructor(abi)

        assert [p.index for p in params] == [0, 1]
        assert [p.name for p in params] == ["owner", "amounts"]
        assert signature(params) == "(address,uint256[])"

    def test_component_without_type(self):
        with pytest.raises(SchemaError):
            parse_param({"name": "s", "type": "tuple", "components": [{"name": "x"}]})
