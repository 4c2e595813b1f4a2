"""
Deterministic contract deployment through a CREATE2 factory

Drives one deployment run: build, resolve the artifact, encode constructor
arguments, predict the CREATE2 address, inspect the chain, then deploy or
skip, and optionally verify on a block explorer.

Design Notes:
- Re-running an identical command never sends a second transaction; the
  code at the predicted address decides between deploy and skip
- The factory transaction is the only chain-mutating call and happens after
  every validation step
- The constructor encoding is computed once and reused for verification
- Verification failure is a warning, never a failed run
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .abi_encoder import encode_constructor_args
from .abi_types import AbiParameter, parse_constructor, signature
from .client.chain_client import receipt_succeeded, run_sync
from .client.explorer_client import ExplorerClient, build_standard_json_input
from .compiler import CompiledArtifact
from .create2 import (
    build_factory_calldata,
    build_init_code,
    compute_create2_address,
    format_salt,
    parse_salt,
    to_checksum,
)
from .tokenizer import tokenize_arguments
from ..utils.common import to_hex
from ..utils.config_manager import DeploySettings, VerifyOptions
from ..utils.exceptions import (
    ConstructorArgMismatch,
    Create2DeployError,
    FactoryNotFound,
    TransactionReverted,
    VerificationFailed,
)

LOG = logging.getLogger(__name__)


class DeploymentState(str, Enum):
    """States a deployment run passes through"""
    BUILT = "built"
    ARTIFACT_RESOLVED = "artifact_resolved"
    ARGS_ENCODED = "args_encoded"
    ADDRESS_COMPUTED = "address_computed"
    ALREADY_DEPLOYED = "already_deployed"
    NOT_DEPLOYED = "not_deployed"
    PREDICTED = "predicted"
    SKIPPED = "skipped"
    DEPLOYED = "deployed"
    UNVERIFIED = "unverified"
    VERIFIED = "verified"


@dataclass
class DeploymentReport:
    """Result of one deployment run"""
    contract: str
    factory: str
    salt: Optional[str] = None
    address: Optional[str] = None
    constructor_args: str = "0x"
    init_code_hash: Optional[str] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    dry_run: bool = False
    verification: Optional[DeploymentState] = None
    verification_error: Optional[str] = None
    history: List[DeploymentState] = field(default_factory=list)

    def advance(self, state: DeploymentState) -> None:
        LOG.debug(f"{self.contract}: -> {state.value}")
        self.history.append(state)

    @property
    def state(self) -> Optional[DeploymentState]:
        """Deployment outcome, ignoring the verification step"""
        for state in reversed(self.history):
            if state not in (DeploymentState.VERIFIED, DeploymentState.UNVERIFIED):
                return state
        return None

    @property
    def sent_transaction(self) -> bool:
        return self.tx_hash is not None

    def summary(self) -> str:
        """One line telling predicted, already deployed and deployed apart"""
        if self.state == DeploymentState.PREDICTED:
            return f"Predicted address (dry run, no transaction sent): {self.address}"
        if self.state == DeploymentState.SKIPPED:
            return f"{self.contract} already deployed at {self.address}, skipped (no transaction sent)"
        if self.state == DeploymentState.DEPLOYED:
            return f"{self.contract} deployed at {self.address} in transaction {self.tx_hash}"
        return f"{self.contract}: {self.state.value if self.state else 'not started'}"

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["state"] = self.state.value if self.state else None
        result["history"] = [s.value for s in self.history]
        if self.verification is not None:
            result["verification"] = self.verification.value
        return result


def _has_arguments(raw: Any) -> bool:
    if raw is None:
        return False
    if isinstance(raw, str):
        return bool(raw.strip())
    return len(raw) > 0


class Create2Deployer:
    """
    Orchestrates one idempotent CREATE2 deployment.

    Collaborators are injected so the state machine runs unchanged against
    forge/web3/Etherscan or in-memory fakes.
    """

    def __init__(
        self,
        settings: DeploySettings,
        compiler,
        chain,
        explorer_factory: Optional[Callable[[VerifyOptions], Any]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Args:
            settings: Classified options for this run
            compiler: build() / resolve_artifact(contract)
            chain: get_code / keccak256 / send_transaction / get_receipt / chain_id
            explorer_factory: Builds an async-context explorer client from
                VerifyOptions (default: ExplorerClient)
            sleep: Awaitable used for the verification settle delay
        """
        self.settings = settings
        self.compiler = compiler
        self.chain = chain
        self.explorer_factory = explorer_factory or ExplorerClient
        self._sleep = sleep

    def encode_arguments(
        self,
        artifact: CompiledArtifact,
        params: Optional[Sequence[AbiParameter]],
        raw_args: Any
    ) -> str:
        """
        Encode constructor arguments against the artifact's constructor.

        Returns:
            0x-prefixed encoding, "0x" when the constructor takes nothing

        Raises:
            ConstructorArgMismatch: Arguments without parameters or the reverse
            ArgumentCountMismatch, EncodingError: From tokenizing/encoding
        """
        supplied = _has_arguments(raw_args)

        if not params:
            if supplied:
                tokens = tokenize_arguments(raw_args)
                reason = "declares no constructor" if params is None else "has a constructor without parameters"
                raise ConstructorArgMismatch(
                    f"Constructor arguments were given but {artifact.name} {reason}",
                    expected=0,
                    actual=len(tokens)
                )
            return "0x"

        if not supplied:
            raise ConstructorArgMismatch(
                f"{artifact.name} constructor{signature(params)} requires "
                f"{len(params)} argument(s); pass them with --constructor-args",
                expected=len(params),
                actual=0
            )

        encoded = encode_constructor_args(params, raw_args)
        LOG.info(f"Encoded constructor{signature(params)}: {len(encoded) // 2 - 1} bytes")
        return encoded

    async def check_factory(self, factory: str) -> None:
        """Raises FactoryNotFound when the factory has no code"""
        code = await self.chain.get_code(factory)
        if not code:
            raise FactoryNotFound(
                f"No CREATE2 factory deployed at {factory} on this chain",
                factory=factory
            )
        LOG.debug(f"Factory present at {factory} ({len(code)} bytes)")

    async def run(self) -> DeploymentReport:
        """
        Execute the deployment state machine.

        Returns:
            DeploymentReport describing the outcome

        Raises:
            Create2DeployError: Any fatal stage failure; VerificationFailed
                is never raised from here
        """
        settings = self.settings
        factory = settings.query.factory
        salt = parse_salt(settings.salt)

        report = DeploymentReport(
            contract=settings.contract,
            factory=to_checksum(bytes.fromhex(factory[2:])),
            salt=format_salt(salt),
            dry_run=settings.dry_run,
        )

        await run_sync(self.compiler.build)
        report.advance(DeploymentState.BUILT)

        artifact = await run_sync(self.compiler.resolve_artifact, settings.contract)
        report.advance(DeploymentState.ARTIFACT_RESOLVED)

        params = parse_constructor(artifact.abi)
        report.constructor_args = self.encode_arguments(artifact, params, settings.constructor_args)
        report.advance(DeploymentState.ARGS_ENCODED)

        init_code = build_init_code(artifact.bytecode, report.constructor_args)
        report.init_code_hash = to_hex(self.chain.keccak256(init_code))

        await self.check_factory(factory)

        address = compute_create2_address(factory, salt, init_code, keccak=self.chain.keccak256)
        report.address = to_checksum(address)
        report.advance(DeploymentState.ADDRESS_COMPUTED)
        LOG.info(f"CREATE2 address for {artifact.contract_ref}: {report.address} (salt {report.salt})")

        if await self.chain.get_code(report.address):
            report.advance(DeploymentState.ALREADY_DEPLOYED)
            report.advance(DeploymentState.SKIPPED)
            LOG.info(f"{report.address} already has code, skipping deployment")
        else:
            report.advance(DeploymentState.NOT_DEPLOYED)
            if settings.dry_run:
                report.advance(DeploymentState.PREDICTED)
                LOG.info(f"Dry run: {report.address} is not deployed, no transaction sent")
                return report
            await self._deploy(report, salt, init_code)

        if settings.verify and not settings.dry_run:
            settle = report.state == DeploymentState.DEPLOYED
            await self.verify(report, artifact, settle=settle)

        return report

    async def _deploy(self, report: DeploymentReport, salt: bytes, init_code: bytes) -> None:
        calldata = build_factory_calldata(salt, init_code)
        LOG.info(f"Deploying {report.contract} to {report.address} via factory {report.factory}")

        tx_hash = await self.chain.send_transaction(report.factory, calldata, self.settings.send)
        report.tx_hash = tx_hash

        receipt = await self.chain.get_receipt(tx_hash, timeout=self.settings.send.receipt_timeout)
        report.block_number = receipt.get("blockNumber")
        report.gas_used = receipt.get("gasUsed")

        if not receipt_succeeded(receipt):
            raise TransactionReverted(
                f"Deployment transaction {tx_hash} reverted; {report.address} was not created",
                tx_hash=tx_hash,
                to_address=report.factory,
                address=report.address
            )

        if not await self.chain.get_code(report.address):
            raise TransactionReverted(
                f"Transaction {tx_hash} succeeded but no code exists at {report.address}",
                tx_hash=tx_hash,
                to_address=report.factory,
                address=report.address
            )

        report.advance(DeploymentState.DEPLOYED)
        LOG.info(f"Deployed {report.contract} at {report.address} (block {report.block_number}, gas {report.gas_used})")

    async def verify(
        self,
        report: DeploymentReport,
        artifact: CompiledArtifact,
        settle: bool = True
    ) -> bool:
        """
        Submit the deployed contract for explorer verification.

        Any failure, including a chain-id lookup or explorer transport
        error, is logged as a warning and recorded on the report; the
        deployment outcome stands.

        Returns:
            True if the explorer confirmed verification
        """
        options = self.settings.verification

        try:
            if options.chain_id is None:
                options = VerifyOptions(**{**asdict(options), "chain_id": await self.chain.chain_id()})

            if settle and options.verify_delay > 0:
                LOG.info(f"Waiting {options.verify_delay:.0f}s for the explorer to index {report.address}")
                await self._sleep(options.verify_delay)

            standard_json = build_standard_json_input(artifact, options.root)
            async with self.explorer_factory(options) as explorer:
                result = await explorer.submit_verification(
                    address=report.address,
                    contract_ref=artifact.contract_ref,
                    constructor_args_hex=report.constructor_args,
                    compiler_version=artifact.compiler_version,
                    standard_json=standard_json,
                )
            if not result.success:
                raise VerificationFailed(result.message)
        except Create2DeployError as e:
            return self._unverified(report, e.message)
        except Exception as e:
            LOG.debug("Unexpected verification error", exc_info=True)
            return self._unverified(report, f"{type(e).__name__}: {e}")

        report.verification = DeploymentState.VERIFIED
        report.advance(DeploymentState.VERIFIED)
        LOG.info(f"Verified {artifact.contract_ref} at {report.address}")
        return True

    def _unverified(self, report: DeploymentReport, reason: str) -> bool:
        LOG.warning(f"Verification failed (deployment unaffected): {reason}")
        report.verification = DeploymentState.UNVERIFIED
        report.verification_error = reason
        report.advance(DeploymentState.UNVERIFIED)
        return False
