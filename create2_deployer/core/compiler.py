"""
Compiler collaborator: Foundry build and artifact resolution

Runs `forge build` and locates the compiled artifact for a contract
reference, either `path/To/File.sol:Name` or a bare `Name` searched across
the output tree.

Design Notes:
- Artifacts live at <out>/<File.sol>/<Name>.json; multi-version builds add
  <Name>.<version>.json siblings
- Both Foundry's `{"bytecode": {"object": ...}}` and flat
  `{"bytecode": "0x..."}` artifact layouts are accepted
- Abstract contracts, interfaces and unlinked libraries are rejected with
  NoBytecode before any encoding happens
"""

import json
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..utils.common import hex_to_bytes, is_hex
from ..utils.config_manager import BuildOptions
from ..utils.exceptions import ArtifactNotFound, BuildFailed, NoBytecode

LOG = logging.getLogger(__name__)

SKIPPED_OUTPUT_DIRS = ("build-info",)
LIBRARY_PLACEHOLDER = "__$"


@dataclass(frozen=True)
class CompiledArtifact:
    """Creation bytecode, ABI and compiler metadata of one contract"""
    name: str
    path: Path
    bytecode: bytes
    abi: List[Dict[str, Any]]
    deployed_bytecode: Optional[bytes] = None
    compiler_version: Optional[str] = None
    source_path: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def contract_ref(self) -> str:
        """`source/path.sol:Name` as explorers expect it"""
        if self.source_path:
            return f"{self.source_path}:{self.name}"
        return self.name


def split_contract_ref(contract: str) -> Tuple[Optional[str], str]:
    """Split `path:Name` into (path, name); bare names give (None, name)"""
    if ":" in contract:
        path, name = contract.rsplit(":", 1)
        return path or None, name
    return None, contract


def _bytecode_object(value: Any) -> str:
    if isinstance(value, dict):
        value = value.get("object")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"unexpected bytecode value of type {type(value).__name__}")
    return value.strip()


def _compilation_target(metadata: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """(source path, contract name) from solc metadata settings"""
    target = (metadata.get("settings") or {}).get("compilationTarget") or {}
    for source, name in target.items():
        return source, name
    return None, None


def load_artifact(path: Path, name: Optional[str] = None) -> CompiledArtifact:
    """
    Load a compiled artifact file.

    Raises:
        ArtifactNotFound: File missing or unreadable
        NoBytecode: Empty creation bytecode or unlinked library references
    """
    name = name or path.name.split(".")[0]

    if not path.exists():
        raise ArtifactNotFound(f"Artifact file not found: {path}", contract=name)

    try:
        with open(path, 'r') as f:
            data = json.load(f)
        bytecode_hex = _bytecode_object(data.get("bytecode"))
        deployed_hex = _bytecode_object(data.get("deployedBytecode"))
    except (json.JSONDecodeError, TypeError, AttributeError) as e:
        raise ArtifactNotFound(
            f"Invalid artifact file {path}: {e}",
            contract=name,
            cause=e
        )

    if LIBRARY_PLACEHOLDER in bytecode_hex:
        raise NoBytecode(
            f"{name} has unlinked library references; link libraries before deploying"
        )
    if bytecode_hex in ("", "0x") or not is_hex(bytecode_hex):
        raise NoBytecode(
            f"{name} has no creation bytecode (abstract contract or interface?)"
        )

    metadata = data.get("metadata") or {}
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except json.JSONDecodeError:
            metadata = {}
    if not metadata and isinstance(data.get("rawMetadata"), str):
        try:
            metadata = json.loads(data["rawMetadata"])
        except json.JSONDecodeError:
            metadata = {}

    source_path, _ = _compilation_target(metadata)
    compiler_version = (metadata.get("compiler") or {}).get("version")

    return CompiledArtifact(
        name=name,
        path=path,
        bytecode=hex_to_bytes(bytecode_hex),
        abi=data.get("abi") or [],
        deployed_bytecode=hex_to_bytes(deployed_hex) if deployed_hex not in ("", "0x") else None,
        compiler_version=compiler_version,
        source_path=source_path,
        metadata=metadata,
    )


class ForgeCompiler:
    """
    Compiler collaborator backed by the `forge` CLI.
    """

    def __init__(
        self,
        options: BuildOptions,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run
    ):
        """
        Args:
            options: Build options (project root, extra forge flags)
            runner: subprocess.run-compatible callable
        """
        self.options = options
        self._run = runner
        self._output_dir: Optional[Path] = None

    def _forge(self, *args: str) -> subprocess.CompletedProcess:
        command = [self.options.forge_bin, *args, "--root", str(self.options.root)]
        LOG.debug(f"Running: {' '.join(command)}")
        return self._run(command, capture_output=True, text=True)

    def build(self) -> None:
        """
        Run `forge build` with the passthrough build flags.

        Raises:
            BuildFailed: forge is missing or exits non-zero
        """
        if self.options.skip_build:
            LOG.info("Skipping build, using existing artifacts")
            return

        LOG.info(f"Building contracts in {self.options.root}")
        try:
            result = self._forge("build", *self.options.build_args)
        except FileNotFoundError as e:
            raise BuildFailed(
                f"Compiler '{self.options.forge_bin}' not found; install Foundry or pass --skip-build",
                cause=e
            )

        if result.returncode != 0:
            stderr = (result.stderr or result.stdout or "").strip()
            tail = "\n".join(stderr.splitlines()[-20:])
            raise BuildFailed(
                f"forge build exited with status {result.returncode}:\n{tail}",
                returncode=result.returncode,
                stderr=tail
            )
        LOG.info("Build succeeded")

    def get_output_dir(self) -> Path:
        """Artifact directory from `forge config --json`, default <root>/out"""
        if self._output_dir is not None:
            return self._output_dir

        root = Path(self.options.root)
        out = "out"
        try:
            result = self._forge("config", "--json")
            if result.returncode == 0:
                out = json.loads(result.stdout).get("out") or out
            else:
                LOG.warning(f"forge config failed, assuming '{out}' output directory")
        except (FileNotFoundError, json.JSONDecodeError) as e:
            LOG.warning(f"Could not read forge config ({e}), assuming '{out}' output directory")

        out_path = Path(out)
        self._output_dir = out_path if out_path.is_absolute() else root / out_path
        return self._output_dir

    def _candidates(self, out_dir: Path, name: str, file_name: str = "*") -> List[Path]:
        found = []
        for pattern in (f"{name}.json", f"{name}.*.json"):
            for path in out_dir.glob(f"**/{file_name}/{pattern}"):
                if any(part in SKIPPED_OUTPUT_DIRS for part in path.relative_to(out_dir).parts):
                    continue
                found.append(path)
        return sorted(set(found))

    def resolve_artifact(self, contract: str) -> CompiledArtifact:
        """
        Locate and load the artifact for `path:Name` or `Name`.

        Raises:
            ArtifactNotFound: No match, or a bare name matching several artifacts
            NoBytecode: The artifact cannot be deployed
        """
        source, name = split_contract_ref(contract)
        if not name:
            raise ArtifactNotFound(f"Invalid contract reference '{contract}'", contract=contract)

        out_dir = self.get_output_dir()
        if not out_dir.is_dir():
            raise ArtifactNotFound(
                f"Build output directory {out_dir} does not exist",
                contract=contract
            )

        if source:
            candidates = self._candidates(out_dir, name, Path(source).name)
        else:
            candidates = self._candidates(out_dir, name)

        if not candidates:
            raise ArtifactNotFound(
                f"No artifact for '{contract}' under {out_dir}",
                contract=contract
            )

        if source and len(candidates) > 1:
            artifacts = [load_artifact(path, name) for path in candidates]
            matching = [a for a in artifacts if a.source_path == source]
            candidates = [a.path for a in matching] or candidates

        if len(candidates) > 1:
            listed = [str(path.relative_to(out_dir)) for path in candidates]
            raise ArtifactNotFound(
                f"'{contract}' is ambiguous, matches: {', '.join(listed)}; use path:Name",
                contract=contract,
                candidates=listed
            )

        artifact = load_artifact(candidates[0], name)
        LOG.info(f"Resolved {contract} -> {artifact.path}")
        return artifact
