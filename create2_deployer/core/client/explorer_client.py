"""
Block explorer verification client
Etherscan-compatible API (v2 multichain endpoint by default)
"""
import aiohttp
import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..compiler import CompiledArtifact
from ...utils.common import strip_0x
from ...utils.config_manager import VerifyOptions
from ...utils.exceptions import VerificationFailed

LOG = logging.getLogger(__name__)

ALREADY_VERIFIED_MARKERS = ("already verified",)
PENDING_MARKERS = ("pending", "in queue")


@dataclass
class VerificationResult:
    """Outcome of one verification submission"""
    success: bool
    message: str
    guid: Optional[str] = None


def build_standard_json_input(artifact: CompiledArtifact, root: Path) -> Dict[str, Any]:
    """
    Reconstruct solc standard-JSON input from artifact metadata.

    Source contents come from the metadata when embedded, otherwise from
    the files under the project root.

    Raises:
        VerificationFailed: Metadata or a source file is missing
    """
    metadata = artifact.metadata or {}
    if not metadata.get("sources"):
        raise VerificationFailed(
            f"Artifact {artifact.path} has no compiler metadata; rebuild with metadata output"
        )

    sources = {}
    for source_path, source in metadata["sources"].items():
        content = (source or {}).get("content")
        if content is None:
            file_path = Path(root) / source_path
            try:
                content = file_path.read_text()
            except OSError as e:
                raise VerificationFailed(
                    f"Cannot read source {file_path} for verification: {e}",
                    cause=e
                )
        sources[source_path] = {"content": content}

    settings = dict(metadata.get("settings") or {})
    settings.pop("compilationTarget", None)

    # metadata stores libraries as "path:Name" -> address
    libraries: Dict[str, Dict[str, str]] = {}
    for reference, address in (settings.pop("libraries", None) or {}).items():
        path, _, name = reference.rpartition(":")
        libraries.setdefault(path, {})[name] = address
    if libraries:
        settings["libraries"] = libraries

    return {
        "language": metadata.get("language", "Solidity"),
        "sources": sources,
        "settings": settings,
    }


class ExplorerClient:
    """Etherscan-compatible verification API client"""

    def __init__(
        self,
        options: VerifyOptions,
        timeout: float = 30.0,
        poll_interval: float = 5.0,
        max_polls: int = 12
    ):
        """
        Initialize explorer client

        Args:
            options: Verification options (API URL, key, chain id)
            timeout: Request timeout (seconds)
            poll_interval: Delay between status checks (seconds)
            max_polls: Status checks before giving up
        """
        self.base_url = options.verifier_url.rstrip('/')
        self.api_key = options.etherscan_api_key
        self.chain_id = options.chain_id
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry"""
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        if self.session:
            await self.session.close()
            self.session = None

    async def _request(
        self,
        params: Dict[str, Any],
        data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """GET (or POST form data) against the API; returns the JSON body"""
        if not self.session:
            raise RuntimeError("Client not initialized. Use 'async with' statement.")

        query = dict(params)
        if self.chain_id is not None:
            query["chainid"] = str(self.chain_id)

        try:
            if data is None:
                request = self.session.get(self.base_url, params=query)
            else:
                request = self.session.post(self.base_url, params=query, data=data)
            async with request as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise VerificationFailed(f"Explorer returned HTTP {resp.status}: {text[:200]}")
                body = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise VerificationFailed(f"Explorer request failed: {e}", cause=e)
        except asyncio.TimeoutError as e:
            raise VerificationFailed(f"Explorer request timed out after {self.timeout}s", cause=e)
        except ValueError as e:
            raise VerificationFailed(f"Explorer returned a non-JSON response: {e}", cause=e)

        if not isinstance(body, dict):
            raise VerificationFailed(f"Explorer returned an unexpected response: {str(body)[:200]}")
        return body

    async def submit_verification(
        self,
        address: str,
        contract_ref: str,
        constructor_args_hex: str,
        compiler_version: str,
        standard_json: Dict[str, Any]
    ) -> VerificationResult:
        """
        Submit source for verification and wait for the verdict

        Args:
            address: Deployed contract address
            contract_ref: `path/File.sol:Name`
            constructor_args_hex: ABI-encoded constructor arguments
            compiler_version: solc version, e.g. 0.8.20+commit.a1b79de6
            standard_json: solc standard-JSON input

        Returns:
            VerificationResult

        Raises:
            VerificationFailed: Missing API key, rejected submission or a
                failed verdict
        """
        if not self.api_key:
            raise VerificationFailed(
                "An explorer API key is required (--etherscan-api-key or ETHERSCAN_API_KEY)"
            )
        if not compiler_version:
            raise VerificationFailed("Compiler version unknown; artifact metadata is missing")

        version = compiler_version if compiler_version.startswith("v") else f"v{compiler_version}"
        LOG.info(f"Submitting {contract_ref} at {address} for verification (compiler {version})")

        body = await self._request(
            {"module": "contract", "action": "verifysourcecode"},
            data={
                "apikey": self.api_key,
                "contractaddress": address,
                "sourceCode": json.dumps(standard_json),
                "codeformat": "solidity-standard-json-input",
                "contractname": contract_ref,
                "compilerversion": version,
                # (sic) the API spells it this way
                "constructorArguements": strip_0x(constructor_args_hex or ""),
            }
        )

        result = str(body.get("result", ""))
        if str(body.get("status")) != "1":
            if any(marker in result.lower() for marker in ALREADY_VERIFIED_MARKERS):
                LOG.info(f"{address} is already verified")
                return VerificationResult(success=True, message=result)
            raise VerificationFailed(f"Verification submission rejected: {result or body.get('message')}")

        return await self.wait_for_verdict(result)

    async def check_status(self, guid: str) -> Dict[str, Any]:
        return await self._request({
            "module": "contract",
            "action": "checkverifystatus",
            "guid": guid,
            "apikey": self.api_key,
        })

    async def wait_for_verdict(self, guid: str) -> VerificationResult:
        """Poll the verification status until it leaves the queue"""
        LOG.info(f"Verification submitted, guid {guid}")

        for _ in range(self.max_polls):
            await asyncio.sleep(self.poll_interval)
            body = await self.check_status(guid)
            result = str(body.get("result", ""))

            if str(body.get("status")) == "1" or any(
                marker in result.lower() for marker in ALREADY_VERIFIED_MARKERS
            ):
                LOG.info(f"Verification passed: {result}")
                return VerificationResult(success=True, message=result, guid=guid)

            if any(marker in result.lower() for marker in PENDING_MARKERS):
                LOG.debug(f"Verification pending: {result}")
                continue

            raise VerificationFailed(f"Verification failed: {result}")

        raise VerificationFailed(
            f"Verification still pending after {self.max_polls} checks (guid {guid})"
        )
