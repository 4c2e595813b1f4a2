"""
Exception hierarchy for the CREATE2 deployer

Every fatal condition of a deployment run maps to one exception class so the
CLI can name the failing stage. All errors carry a numeric code, an optional
details dictionary and the underlying cause.

Design Notes:
- Codes are grouped by stage (1xxx build, 2xxx schema/arguments,
  3xxx chain, 4xxx verification, 5xxx configuration)
- VerificationFailed is the only soft error; the orchestrator logs it and
  continues
"""

from typing import Any, Dict, Optional


class ErrorCodes:
    """Numeric error codes grouped by deployment stage"""
    # Build and artifacts
    BUILD_FAILED = 1001
    ARTIFACT_NOT_FOUND = 1002
    NO_BYTECODE = 1003

    # ABI schema and constructor arguments
    SCHEMA_ERROR = 2001
    ARGUMENT_ERROR = 2002
    ARGUMENT_COUNT_MISMATCH = 2003
    CONSTRUCTOR_ARG_MISMATCH = 2004
    ENCODING_ERROR = 2005
    INVALID_SALT = 2006

    # Chain interaction
    FACTORY_NOT_FOUND = 3001
    TRANSACTION_FAILED = 3002
    TRANSACTION_REVERTED = 3003
    RPC_ERROR = 3004

    # Verification
    VERIFICATION_FAILED = 4001

    # Configuration
    CONFIG_FILE_NOT_FOUND = 5001
    CONFIG_VALIDATION_FAILED = 5002


class Create2DeployError(Exception):
    """Base exception class for the CREATE2 deployer"""

    code = 1000
    stage = "deploy"

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        self.message = message
        if code is not None:
            self.code = code
        self.details = {k: v for k, v in (details or {}).items() if v is not None}
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for logs and reports"""
        result = {
            "error": type(self).__name__,
            "stage": self.stage,
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result


class BuildFailed(Create2DeployError):
    """The compiler exited with a non-zero status"""
    code = ErrorCodes.BUILD_FAILED
    stage = "build"

    def __init__(self, message: str, returncode: Optional[int] = None,
                 stderr: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            details={"returncode": returncode, "stderr": stderr},
            **kwargs
        )


class ArtifactNotFound(Create2DeployError):
    """No artifact, or more than one, matches the contract reference"""
    code = ErrorCodes.ARTIFACT_NOT_FOUND
    stage = "resolve artifact"

    def __init__(self, message: str, contract: Optional[str] = None,
                 candidates: Optional[list] = None, **kwargs):
        super().__init__(
            message,
            details={"contract": contract, "candidates": candidates},
            **kwargs
        )


class NoBytecode(Create2DeployError):
    """Artifact has no deployable creation bytecode"""
    code = ErrorCodes.NO_BYTECODE
    stage = "resolve artifact"


class SchemaError(Create2DeployError):
    """Malformed ABI type descriptor"""
    code = ErrorCodes.SCHEMA_ERROR
    stage = "parse ABI"

    def __init__(self, message: str, type_str: Optional[str] = None, **kwargs):
        super().__init__(message, details={"type": type_str}, **kwargs)


class ArgumentError(Create2DeployError):
    """Constructor argument text could not be tokenized"""
    code = ErrorCodes.ARGUMENT_ERROR
    stage = "tokenize arguments"


class ArgumentCountMismatch(ArgumentError):
    """Number of argument tokens differs from the constructor arity"""
    code = ErrorCodes.ARGUMENT_COUNT_MISMATCH

    def __init__(self, message: str, expected: Optional[int] = None,
                 actual: Optional[int] = None, **kwargs):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message,
            details={"expected": expected, "actual": actual},
            **kwargs
        )


class ConstructorArgMismatch(ArgumentCountMismatch):
    """Arguments given without a constructor, or required but missing"""
    code = ErrorCodes.CONSTRUCTOR_ARG_MISMATCH


class EncodingError(Create2DeployError):
    """A value does not fit its declared ABI type"""
    code = ErrorCodes.ENCODING_ERROR
    stage = "encode arguments"

    def __init__(self, message: str, index: Optional[int] = None,
                 abi_type: Optional[str] = None, **kwargs):
        self.index = index
        self.abi_type = abi_type
        super().__init__(
            message,
            details={"index": index, "type": abi_type},
            **kwargs
        )


class SaltError(Create2DeployError):
    """Salt is not a hex value of at most 32 bytes"""
    code = ErrorCodes.INVALID_SALT
    stage = "parse salt"


class FactoryNotFound(Create2DeployError):
    """No code at the CREATE2 factory address on the target chain"""
    code = ErrorCodes.FACTORY_NOT_FOUND
    stage = "check factory"

    def __init__(self, message: str, factory: Optional[str] = None, **kwargs):
        super().__init__(message, details={"factory": factory}, **kwargs)


class RpcError(Create2DeployError):
    """A read-only chain query failed after its retries were spent"""
    code = ErrorCodes.RPC_ERROR
    stage = "query chain"

    def __init__(self, message: str, method: Optional[str] = None, **kwargs):
        super().__init__(message, details={"method": method}, **kwargs)


class TransactionFailed(Create2DeployError):
    """Transaction could not be signed, broadcast or confirmed"""
    code = ErrorCodes.TRANSACTION_FAILED
    stage = "send transaction"

    def __init__(self, message: str, tx_hash: Optional[str] = None,
                 from_address: Optional[str] = None,
                 to_address: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            details={
                "tx_hash": tx_hash,
                "from_address": from_address,
                "to_address": to_address,
            },
            **kwargs
        )


class TransactionReverted(TransactionFailed):
    """Transaction was mined but the contract was not created"""
    code = ErrorCodes.TRANSACTION_REVERTED
    stage = "await receipt"

    def __init__(self, message: str, address: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        if address is not None:
            self.details["address"] = address


class VerificationFailed(Create2DeployError):
    """Block explorer rejected or did not confirm the verification"""
    code = ErrorCodes.VERIFICATION_FAILED
    stage = "verify"


class ConfigurationError(Create2DeployError):
    """Invalid configuration file, flag or environment value"""
    code = ErrorCodes.CONFIG_VALIDATION_FAILED
    stage = "configure"

    def __init__(self, message: str, config_file: Optional[str] = None,
                 field: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            details={"config_file": config_file, "field": field},
            **kwargs
        )
