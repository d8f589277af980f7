from dataclasses import dataclass
from enum import Enum


class AAWalletException(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


class BuildExceptionCode(Enum):
    NonceUnavailable = "nonce_unavailable"
    HashUnavailable = "hash_unavailable"
    InvalidCall = "invalid_call"
    AlreadySigned = "already_signed"


@dataclass
class BuildException(AAWalletException):
    exception_code: BuildExceptionCode
    message: str


class SigningExceptionCode(Enum):
    NoSigner = "no_signer"
    NotOwner = "not_owner"
    DuplicateSigner = "duplicate_signer"
    Rejected = "rejected"
    SessionKeyExpired = "session_key_expired"
    SessionKeyUsed = "session_key_used"


@dataclass
class SigningException(AAWalletException):
    exception_code: SigningExceptionCode
    message: str


class BundlerExceptionCode(Enum):
    Rejected = "rejected"
    MissingResult = "missing_result"
    Unreachable = "unreachable"
    UnsignedOperation = "unsigned_operation"
    Timeout = "timeout"


@dataclass
class BundlerException(AAWalletException):
    exception_code: BundlerExceptionCode
    message: str


@dataclass
class ReceiptTimeoutException(BundlerException):
    user_operation_hash: str
    attempts: int


@dataclass
class ChainReadException(AAWalletException):
    method: str
    message: str


class NetworkSwitchExceptionCode(Enum):
    UnrecognizedChain = 4902
    SwitchFailed = -1


@dataclass
class NetworkSwitchException(AAWalletException):
    exception_code: NetworkSwitchExceptionCode
    message: str


@dataclass
class ConfigurationException(AAWalletException):
    message: str


# EIP-1193 provider error raised by Wallet implementations
USER_REJECTED_REQUEST = 4001
UNRECOGNIZED_CHAIN = 4902


@dataclass
class WalletRequestException(AAWalletException):
    code: int
    message: str
