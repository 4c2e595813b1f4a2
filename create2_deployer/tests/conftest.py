"""
Pytest configuration and fixtures for the CREATE2 deployer tests.

Provides a Foundry-style project on disk (artifacts under out/), a forge
runner stub, the in-memory FakeChain and a settings factory.

Usage:
    def test_something(forge_project, fake_chain, make_settings):
        settings = make_settings("Counter", dry_run=True)
"""

import json
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from create2_deployer.core.compiler import ForgeCompiler
from create2_deployer.utils.config_manager import (
    BuildOptions,
    DeploySettings,
    QueryOptions,
    SendOptions,
    VerifyOptions,
)
from create2_deployer.tests.fake_chain import FakeChain

TEST_PRIVATE_KEY = "0x" + "11" * 32

COUNTER_SOURCE = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

contract Counter {
    uint256 public number;
}
"""

# PUSH1 0x2a PUSH1 0 SSTORE STOP
COUNTER_BYTECODE = "0x602a60005500"
TOKEN_BYTECODE = "0x6080604052348015600e575f80fd5b00"
REGISTRY_BYTECODE = "0x60806040523460155761001a565b5f80fd5b00"
REVERTING_BYTECODE = "0xfe60006000fd"

TOKEN_ABI = [
    {
        "type": "constructor",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "name_", "type": "string", "internalType": "string"},
            {"name": "supply", "type": "uint256", "internalType": "uint256"},
        ],
    },
    {"type": "function", "name": "totalSupply", "inputs": [], "outputs": [{"name": "", "type": "uint256"}]},
]

REGISTRY_ABI = [
    {
        "type": "constructor",
        "inputs": [
            {
                "name": "owner",
                "type": "tuple",
                "internalType": "struct Registry.Owner",
                "components": [
                    {"name": "name", "type": "string"},
                    {"name": "age", "type": "uint256"},
                    {"name": "wallet", "type": "address"},
                    {"name": "active", "type": "bool"},
                ],
            }
        ],
    }
]

COMPILER_VERSION = "0.8.20+commit.a1b79de6"


def _metadata(source_path: str, name: str, content: Optional[str] = None) -> Dict[str, Any]:
    source: Dict[str, Any] = {"keccak256": "0x00", "urls": []}
    if content is not None:
        source["content"] = content
    return {
        "compiler": {"version": COMPILER_VERSION},
        "language": "Solidity",
        "sources": {source_path: source},
        "settings": {
            "compilationTarget": {source_path: name},
            "optimizer": {"enabled": True, "runs": 200},
            "evmVersion": "paris",
            "libraries": {},
        },
    }


def write_artifact(
    out_dir: Path,
    file_name: str,
    name: str,
    bytecode: Optional[str],
    abi: Optional[List[Dict[str, Any]]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    artifact_name: Optional[str] = None
) -> Path:
    """Write a forge-layout artifact <out>/<file_name>/<name>.json"""
    directory = out_dir / file_name
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{artifact_name or name}.json"
    data = {
        "abi": abi or [],
        "bytecode": {"object": bytecode, "linkReferences": {}},
        "deployedBytecode": {"object": bytecode, "linkReferences": {}},
        "metadata": metadata or {},
    }
    path.write_text(json.dumps(data))
    return path


@pytest.fixture
def forge_project(tmp_path):
    """Foundry project with compiled artifacts for the test contracts"""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "Counter.sol").write_text(COUNTER_SOURCE)
    out = tmp_path / "out"

    write_artifact(out, "Counter.sol", "Counter", COUNTER_BYTECODE,
                   metadata=_metadata("src/Counter.sol", "Counter"))
    write_artifact(out, "Token.sol", "Token", TOKEN_BYTECODE, abi=TOKEN_ABI,
                   metadata=_metadata("src/Token.sol", "Token", content="contract Token {}"))
    write_artifact(out, "Registry.sol", "Registry", REGISTRY_BYTECODE, abi=REGISTRY_ABI,
                   metadata=_metadata("src/Registry.sol", "Registry", content="contract Registry {}"))
    write_artifact(out, "Reverting.sol", "Reverting", REVERTING_BYTECODE,
                   metadata=_metadata("src/Reverting.sol", "Reverting", content="contract Reverting {}"))
    write_artifact(out, "IERC20.sol", "IERC20", "0x")
    write_artifact(out, "Linked.sol", "Linked",
                   "0x6080__$1234567890abcdef1234567890abcdef12$__6000")
    return tmp_path


def forge_result(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=["forge"], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def forge_runner():
    """subprocess.run stand-in: build succeeds, config reports out/"""
    calls = []

    def runner(command, **kwargs):
        calls.append(command)
        if command[1:3] == ["config", "--json"]:
            return forge_result(stdout=json.dumps({"out": "out", "src": "src"}))
        return forge_result(stdout="Compiler run successful!")

    runner.calls = calls
    return runner


@pytest.fixture
def fake_chain():
    return FakeChain()


@pytest.fixture
def make_settings(forge_project):
    """Factory for DeploySettings rooted at the test project"""

    def factory(contract: str, **overrides) -> DeploySettings:
        send = overrides.pop("send", None) or SendOptions(private_key=TEST_PRIVATE_KEY, chain_id=31337)
        verification = overrides.pop("verification", None) or VerifyOptions(
            root=forge_project,
            etherscan_api_key="test-key",
            verify_delay=10.0,
        )
        return DeploySettings(
            contract=contract,
            build=overrides.pop("build", None) or BuildOptions(root=forge_project),
            query=overrides.pop("query", None) or QueryOptions(),
            send=send,
            verification=verification,
            **overrides
        )

    return factory


@pytest.fixture
def compiler(forge_project, forge_runner):
    return ForgeCompiler(BuildOptions(root=forge_project), runner=forge_runner)
