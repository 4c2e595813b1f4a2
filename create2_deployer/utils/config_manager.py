"""
Configuration for a deployment run

Classifies every option once into per-collaborator records (compiler,
read-only chain queries, transaction sending, explorer verification) so no
collaborator re-derives its flags from the raw command line.

Design Notes:
- FLAG_ROUTES is the single table mapping an option to the collaborators
  that consume it; each record's fields are exactly the options routed to it
- Precedence: command-line flag > environment variable > config file > default
- Config files are JSON objects keyed by option name, validated against
  CONFIG_SCHEMA with jsonschema before any value is used
- Secrets (private key, explorer API key) are never logged or serialized
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Type, TypeVar, Union

import jsonschema

from .common import is_hex, strip_0x
from .exceptions import ConfigurationError, ErrorCodes

LOG = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_RPC_URL = "http://127.0.0.1:8545"
DEFAULT_FACTORY = "0x4e59b44847b379578588920ca78fbf26c0b4956c"
DEFAULT_VERIFIER_URL = "https://api.etherscan.io/v2/api"

ENV_FACTORY = "CREATE2_FACTORY"
ENV_PRIVATE_KEY = "PRIVATE_KEY"
ENV_ETHERSCAN_API_KEY = "ETHERSCAN_API_KEY"
ENV_RPC_URL = "ETH_RPC_URL"


class Collaborator(str, Enum):
    BUILD = "build"
    QUERY = "query"
    SEND = "send"
    VERIFY = "verify"


_B, _Q, _S, _V = Collaborator.BUILD, Collaborator.QUERY, Collaborator.SEND, Collaborator.VERIFY

FLAG_ROUTES: Dict[str, FrozenSet[Collaborator]] = {
    "root": frozenset({_B, _V}),
    "skip_build": frozenset({_B}),
    "forge_bin": frozenset({_B}),
    "build_args": frozenset({_B}),
    "rpc_url": frozenset({_Q, _S}),
    "factory": frozenset({_Q}),
    "private_key": frozenset({_S}),
    "chain_id": frozenset({_S, _V}),
    "gas_limit": frozenset({_S}),
    "gas_price": frozenset({_S}),
    "priority_gas_price": frozenset({_S}),
    "legacy": frozenset({_S}),
    "receipt_timeout": frozenset({_S}),
    "etherscan_api_key": frozenset({_V}),
    "verifier_url": frozenset({_V}),
    "verify_delay": frozenset({_V}),
}

ENV_OVERRIDES = {
    "factory": ENV_FACTORY,
    "private_key": ENV_PRIVATE_KEY,
    "etherscan_api_key": ENV_ETHERSCAN_API_KEY,
    "rpc_url": ENV_RPC_URL,
}

SECRET_OPTIONS = frozenset({"private_key", "etherscan_api_key"})

_STRING = {"type": "string", "minLength": 1}
_ADDRESS = {"type": "string", "pattern": "^(0[xX])?[0-9a-fA-F]{40}$"}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "root": _STRING,
        "skip_build": {"type": "boolean"},
        "forge_bin": _STRING,
        "build_args": {"type": "array", "items": {"type": "string"}},
        "rpc_url": _STRING,
        "factory": _ADDRESS,
        "private_key": _STRING,
        "chain_id": {"type": "integer", "minimum": 1},
        "gas_limit": {"type": "integer", "minimum": 1},
        "gas_price": {"type": "integer", "minimum": 0},
        "priority_gas_price": {"type": "integer", "minimum": 0},
        "legacy": {"type": "boolean"},
        "receipt_timeout": {"type": "number", "exclusiveMinimum": 0},
        "etherscan_api_key": _STRING,
        "verifier_url": _STRING,
        "verify_delay": {"type": "number", "minimum": 0},
    },
}


@dataclass(frozen=True)
class BuildOptions:
    """Options consumed by the compiler"""
    root: Path = field(default_factory=Path.cwd)
    skip_build: bool = False
    forge_bin: str = "forge"
    build_args: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class QueryOptions:
    """Options for read-only chain queries"""
    rpc_url: str = DEFAULT_RPC_URL
    factory: str = DEFAULT_FACTORY


@dataclass(frozen=True)
class SendOptions:
    """Options for signing and sending the deployment transaction"""
    rpc_url: str = DEFAULT_RPC_URL
    private_key: Optional[str] = field(default=None, repr=False)
    chain_id: Optional[int] = None
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None
    priority_gas_price: Optional[int] = None
    legacy: bool = False
    receipt_timeout: float = 120.0


@dataclass(frozen=True)
class VerifyOptions:
    """Options for block-explorer verification"""
    root: Path = field(default_factory=Path.cwd)
    chain_id: Optional[int] = None
    etherscan_api_key: Optional[str] = field(default=None, repr=False)
    verifier_url: str = DEFAULT_VERIFIER_URL
    verify_delay: float = 10.0


@dataclass(frozen=True)
class DeploySettings:
    """Everything one deployment run needs, classified per collaborator"""
    contract: str
    constructor_args: Optional[List[str]] = None
    salt: Optional[str] = None
    verify: bool = False
    dry_run: bool = False
    build: BuildOptions = field(default_factory=BuildOptions)
    query: QueryOptions = field(default_factory=QueryOptions)
    send: SendOptions = field(default_factory=SendOptions)
    verification: VerifyOptions = field(default_factory=VerifyOptions)


def _route(values: Mapping[str, Any], collaborator: Collaborator, record: Type[T]) -> T:
    """Build a collaborator record from the options routed to it"""
    names = {f.name for f in fields(record)}
    kwargs = {
        key: value for key, value in values.items()
        if collaborator in FLAG_ROUTES.get(key, ()) and key in names
    }
    return record(**kwargs)


def _validate_address(value: str, option: str) -> str:
    if not isinstance(value, str) or len(strip_0x(value)) != 40 or not is_hex(value):
        raise ConfigurationError(
            f"Option '{option}' must be a 20-byte hex address, got '{value}'",
            field=option
        )
    return "0x" + strip_0x(value).lower()


class ConfigManager:
    """
    Resolves deployment options from flags, environment and config file.
    """

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        """
        Initialize configuration manager.

        Args:
            env: Environment mapping (default: os.environ)
        """
        self.env = os.environ if env is None else env

    def load_config(self, config_file: Union[str, Path]) -> Dict[str, Any]:
        """
        Load a JSON config file of option defaults.

        Raises:
            ConfigurationError: File missing, invalid JSON, unknown keys or
                values of the wrong type
        """
        path = Path(config_file)
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                config_file=str(path),
                code=ErrorCodes.CONFIG_FILE_NOT_FOUND
            )

        try:
            with open(path, 'r') as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in configuration file {path}: {e}",
                config_file=str(path),
                cause=e
            )

        if not isinstance(config, dict):
            raise ConfigurationError(
                f"Configuration file {path} must contain a JSON object",
                config_file=str(path)
            )

        unknown = sorted(set(config) - set(FLAG_ROUTES))
        if unknown:
            raise ConfigurationError(
                f"Unknown option(s) in {path}: {', '.join(unknown)}",
                config_file=str(path),
                field=unknown[0]
            )

        errors = sorted(
            jsonschema.Draft7Validator(CONFIG_SCHEMA).iter_errors(config),
            key=lambda e: [str(p) for p in e.path]
        )
        if errors:
            problems = [
                f"'{' -> '.join(str(p) for p in e.path)}' {e.message}" if e.path else e.message
                for e in errors
            ]
            raise ConfigurationError(
                f"Invalid configuration in {path}: {'; '.join(problems)}",
                config_file=str(path),
                field=str(errors[0].path[0]) if errors[0].path else None,
                cause=errors[0]
            )

        LOG.debug(f"Loaded configuration from {path}: {sorted(config)}")
        return config

    def get_env_override(self, key: str) -> Optional[str]:
        """Environment value for an option, if it has one and it is set"""
        env_key = ENV_OVERRIDES.get(key)
        if env_key is None:
            return None
        value = self.env.get(env_key)
        return value if value else None

    def resolve(
        self,
        cli_values: Mapping[str, Any],
        config: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Merge option layers; unset layers (None) fall through"""
        resolved: Dict[str, Any] = {}
        for key in FLAG_ROUTES:
            value = cli_values.get(key)
            source = "flag"
            if value is None:
                value = self.get_env_override(key)
                source = "env"
            if value is None and config:
                value = config.get(key)
                source = "config"
            if value is None:
                continue
            resolved[key] = value
            if key not in SECRET_OPTIONS:
                LOG.debug(f"Option {key}={value!r} (from {source})")

        if "factory" in resolved:
            resolved["factory"] = _validate_address(resolved["factory"], "factory")
        if "root" in resolved:
            resolved["root"] = Path(resolved["root"])
        return resolved

    def build_settings(
        self,
        contract: str,
        cli_values: Mapping[str, Any],
        constructor_args: Optional[List[str]] = None,
        salt: Optional[str] = None,
        verify: bool = False,
        dry_run: bool = False,
        config_file: Optional[Union[str, Path]] = None
    ) -> DeploySettings:
        """
        Classify options into per-collaborator records.

        Returns:
            DeploySettings for one run
        """
        config = self.load_config(config_file) if config_file else None
        values = self.resolve(cli_values, config)

        return DeploySettings(
            contract=contract,
            constructor_args=constructor_args,
            salt=salt,
            verify=verify,
            dry_run=dry_run,
            build=_route(values, Collaborator.BUILD, BuildOptions),
            query=_route(values, Collaborator.QUERY, QueryOptions),
            send=_route(values, Collaborator.SEND, SendOptions),
            verification=_route(values, Collaborator.VERIFY, VerifyOptions),
        )
