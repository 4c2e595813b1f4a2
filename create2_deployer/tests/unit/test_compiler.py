"""
Unit tests for the forge compiler collaborator
"""

import json

import pytest

from create2_deployer.core.compiler import ForgeCompiler, load_artifact, split_contract_ref
from create2_deployer.tests.conftest import (
    COMPILER_VERSION,
    COUNTER_BYTECODE,
    forge_result,
    write_artifact,
)
from create2_deployer.utils.config_manager import BuildOptions
from create2_deployer.utils.exceptions import ArtifactNotFound, BuildFailed, NoBytecode


class TestBuild:
    """forge build invocation"""

    def test_build_passes_through_flags(self, forge_project, forge_runner):
        options = BuildOptions(root=forge_project, build_args=["--optimize", "--via-ir"])

        ForgeCompiler(options, runner=forge_runner).build()

        assert forge_runner.calls == [
            ["forge", "build", "--optimize", "--via-ir", "--root", str(forge_project)]
        ]

    def test_build_failure_attaches_stderr(self, forge_project):
        def failing(command, **kwargs):
            return forge_result(returncode=1, stderr="Error: Compiler run failed\nParserError: boom")

        with pytest.raises(BuildFailed) as exc_info:
            ForgeCompiler(BuildOptions(root=forge_project), runner=failing).build()

        assert exc_info.value.details["returncode"] == 1
        assert "ParserError: boom" in exc_info.value.details["stderr"]

    def test_missing_forge(self, forge_project):
        def missing(command, **kwargs):
            raise FileNotFoundError(command[0])

        with pytest.raises(BuildFailed, match="not found"):
            ForgeCompiler(BuildOptions(root=forge_project), runner=missing).build()

    def test_skip_build(self, forge_project, forge_runner):
        ForgeCompiler(BuildOptions(root=forge_project, skip_build=True), runner=forge_runner).build()

        assert forge_runner.calls == []


class TestOutputDir:
    """Artifact directory discovery"""

    def test_from_forge_config(self, forge_project):
        def runner(command, **kwargs):
            return forge_result(stdout=json.dumps({"out": "artifacts"}))

        compiler = ForgeCompiler(BuildOptions(root=forge_project), runner=runner)

        assert compiler.get_output_dir() == forge_project / "artifacts"

    def test_falls_back_to_out(self, forge_project):
        def runner(command, **kwargs):
            return forge_result(returncode=1, stderr="no foundry.toml")

        compiler = ForgeCompiler(BuildOptions(root=forge_project), runner=runner)

        assert compiler.get_output_dir() == forge_project / "out"


class TestResolveArtifact:
    """Contract reference resolution"""

    def test_split_contract_ref(self):
        assert split_contract_ref("src/Counter.sol:Counter") == ("src/Counter.sol", "Counter")
        assert split_contract_ref("Counter") == (None, "Counter")

    def test_by_path_and_name(self, compiler):
        artifact = compiler.resolve_artifact("src/Counter.sol:Counter")

        assert artifact.name == "Counter"
        assert artifact.bytecode == bytes.fromhex(COUNTER_BYTECODE[2:])
        assert artifact.compiler_version == COMPILER_VERSION
        assert artifact.contract_ref == "src/Counter.sol:Counter"

    def test_by_name(self, compiler):
        artifact = compiler.resolve_artifact("Token")

        assert artifact.abi[0]["type"] == "constructor"

    def test_not_found(self, compiler):
        with pytest.raises(ArtifactNotFound):
            compiler.resolve_artifact("Missing")

    def test_ambiguous_name_lists_candidates(self, forge_project, compiler):
        write_artifact(forge_project / "out", "Other.sol", "Counter", "0x6000")

        with pytest.raises(ArtifactNotFound, match="ambiguous") as exc_info:
            compiler.resolve_artifact("Counter")

        assert sorted(exc_info.value.details["candidates"]) == [
            "Counter.sol/Counter.json",
            "Other.sol/Counter.json",
        ]

    def test_path_disambiguates_same_file_name(self, forge_project, compiler):
        nested = forge_project / "out" / "lib"
        write_artifact(nested, "Counter.sol", "Counter", "0x6001", metadata={
            "settings": {"compilationTarget": {"lib/x/Counter.sol": "Counter"}},
        })

        artifact = compiler.resolve_artifact("src/Counter.sol:Counter")

        assert artifact.bytecode == bytes.fromhex(COUNTER_BYTECODE[2:])

    def test_build_info_is_ignored(self, forge_project, compiler):
        write_artifact(forge_project / "out" / "build-info", "Token.sol", "Token", "0x6000")

        assert compiler.resolve_artifact("Token").name == "Token"

    def test_interface_has_no_bytecode(self, compiler):
        with pytest.raises(NoBytecode, match="abstract contract or interface"):
            compiler.resolve_artifact("IERC20")

    def test_unlinked_library(self, compiler):
        with pytest.raises(NoBytecode, match="link"):
            compiler.resolve_artifact("Linked")


class TestLoadArtifact:
    """Artifact file formats"""

    def test_flat_bytecode_and_string_metadata(self, tmp_path):
        path = tmp_path / "Flat.json"
        path.write_text(json.dumps({
            "abi": [],
            "bytecode": "0x6000",
            "metadata": json.dumps({"compiler": {"version": "0.8.19"}}),
        }))

        artifact = load_artifact(path)

        assert artifact.name == "Flat"
        assert artifact.bytecode == b"\x60\x00"
        assert artifact.compiler_version == "0.8.19"
        assert artifact.deployed_bytecode is None

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "Broken.json"
        path.write_text("{not json")

        with pytest.raises(ArtifactNotFound, match="Invalid artifact"):
            load_artifact(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ArtifactNotFound):
            load_artifact(tmp_path / "Nope.json")
