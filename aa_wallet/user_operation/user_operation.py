from dataclasses import dataclass, field

from eth_utils import to_checksum_address

from aa_wallet.typing import Address

UINT128_MAX = 2**128 - 1
PAYMASTER_AND_DATA_STATIC_LENGTH = 20 + 16 + 16


def pack_uint128_pair(high: int, low: int) -> bytes:
    if not (0 <= high <= UINT128_MAX and 0 <= low <= UINT128_MAX):
        raise ValueError(f"Values {high} and {low} do not fit in uint128")
    return high.to_bytes(16) + low.to_bytes(16)


def unpack_uint128_pair(packed: bytes) -> tuple[int, int]:
    if len(packed) != 32:
        raise ValueError(f"Packed uint128 pair must be 32 bytes, got {len(packed)}")
    return int.from_bytes(packed[:16]), int.from_bytes(packed[16:])


def pack_account_gas_limits(
    verification_gas_limit: int, call_gas_limit: int
) -> bytes:
    return pack_uint128_pair(verification_gas_limit, call_gas_limit)


def unpack_account_gas_limits(account_gas_limits: bytes) -> tuple[int, int]:
    """returns (verification_gas_limit, call_gas_limit)"""
    return unpack_uint128_pair(account_gas_limits)


def pack_gas_fees(max_priority_fee_per_gas: int, max_fee_per_gas: int) -> bytes:
    return pack_uint128_pair(max_priority_fee_per_gas, max_fee_per_gas)


def unpack_gas_fees(gas_fees: bytes) -> tuple[int, int]:
    """returns (max_priority_fee_per_gas, max_fee_per_gas)"""
    return unpack_uint128_pair(gas_fees)


def pack_paymaster_and_data(
    paymaster: Address | None,
    paymaster_verification_gas_limit: int,
    paymaster_post_op_gas_limit: int,
    paymaster_data: bytes = b"",
) -> bytes:
    if paymaster is None:
        return bytes(0)
    return (
        bytes.fromhex(paymaster[2:]) +
        pack_uint128_pair(
            paymaster_verification_gas_limit, paymaster_post_op_gas_limit) +
        paymaster_data
    )


def unpack_paymaster_and_data(
    paymaster_and_data: bytes,
) -> tuple[Address, int, int, bytes] | None:
    if len(paymaster_and_data) == 0:
        return None
    if len(paymaster_and_data) < PAYMASTER_AND_DATA_STATIC_LENGTH:
        raise ValueError(
            "paymasterAndData must be empty or at least "
            f"{PAYMASTER_AND_DATA_STATIC_LENGTH} bytes"
        )
    paymaster = Address(to_checksum_address(paymaster_and_data[:20]))
    verification_gas_limit, post_op_gas_limit = unpack_uint128_pair(
        paymaster_and_data[20:PAYMASTER_AND_DATA_STATIC_LENGTH]
    )
    return (
        paymaster,
        verification_gas_limit,
        post_op_gas_limit,
        paymaster_and_data[PAYMASTER_AND_DATA_STATIC_LENGTH:],
    )


@dataclass()
class UserOperationV7:
    """
    Packed ERC-4337 v0.7 UserOperation, the layout the EntryPoint hashes.

    The operation stays mutable until it is submitted. The signature can
    only be set once and an operation is sealed after submission.
    """
    sender_address: Address
    nonce: int
    init_code: bytes
    call_data: bytes
    account_gas_limits: bytes
    pre_verification_gas: int
    gas_fees: bytes
    paymaster_and_data: bytes
    signature: bytes = b""
    is_sealed: bool = field(default=False, init=False, repr=False)

    def __setattr__(self, name, value) -> None:
        if getattr(self, "is_sealed", False):
            raise AttributeError(
                f"UserOperation was submitted, {name} can not be modified")
        if name == "signature" and getattr(self, "signature", b"") != b"":
            raise AttributeError("UserOperation signature is already set")
        super().__setattr__(name, value)

    def seal(self) -> None:
        object.__setattr__(self, "is_sealed", True)

    @property
    def is_signed(self) -> bool:
        return len(self.signature) > 0

    @property
    def verification_gas_limit(self) -> int:
        return unpack_account_gas_limits(self.account_gas_limits)[0]

    @property
    def call_gas_limit(self) -> int:
        return unpack_account_gas_limits(self.account_gas_limits)[1]

    @property
    def max_priority_fee_per_gas(self) -> int:
        return unpack_gas_fees(self.gas_fees)[0]

    @property
    def max_fee_per_gas(self) -> int:
        return unpack_gas_fees(self.gas_fees)[1]

    def to_list(self) -> list[Address | int | bytes]:
        return [
            self.sender_address,
            self.nonce,
            self.init_code,
            self.call_data,
            self.account_gas_limits,
            self.pre_verification_gas,
            self.gas_fees,
            self.paymaster_and_data,
            self.signature,
        ]

    def get_user_operation_json(self) -> dict[str, Address | str]:
        """unpacked field layout expected by bundlers' json-rpc api"""
        verification_gas_limit, call_gas_limit = unpack_account_gas_limits(
            self.account_gas_limits)
        max_priority_fee_per_gas, max_fee_per_gas = unpack_gas_fees(
            self.gas_fees)

        user_operation_json: dict[str, Address | str] = {
            "sender": self.sender_address,
            "nonce": hex(self.nonce),
            "callData": "0x" + self.call_data.hex(),
            "callGasLimit": hex(call_gas_limit),
            "verificationGasLimit": hex(verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(max_fee_per_gas),
            "maxPriorityFeePerGas": hex(max_priority_fee_per_gas),
            "signature": "0x" + self.signature.hex(),
        }

        if len(self.init_code) > 0:
            user_operation_json["factory"] = Address(
                to_checksum_address(self.init_code[:20]))
            user_operation_json["factoryData"] = "0x" + self.init_code[20:].hex()

        paymaster_fields = unpack_paymaster_and_data(self.paymaster_and_data)
        if paymaster_fields is not None:
            (
                paymaster,
                paymaster_verification_gas_limit,
                paymaster_post_op_gas_limit,
                paymaster_data,
            ) = paymaster_fields
            user_operation_json.update({
                "paymaster": paymaster,
                "paymasterVerificationGasLimit":
                hex(paymaster_verification_gas_limit),
                "paymasterPostOpGasLimit": hex(paymaster_post_op_gas_limit),
                "paymasterData": "0x" + paymaster_data.hex(),
            })

        return user_operation_json
