import logging

from eth_abi.exceptions import EncodingError
from eth_utils import to_checksum_address

from aa_wallet.chain.chain_reader import ChainReader
from aa_wallet.client.exceptions import (
    BuildException, BuildExceptionCode, ChainReadException)
from aa_wallet.config.gas import DEFAULT_GAS_CONFIG, GasConfig
from aa_wallet.typing import Address
from .calldata import encode_execute_batch_calldata, encode_execute_calldata
from .user_operation import (
    UserOperationV7, pack_account_gas_limits, pack_gas_fees,
    pack_paymaster_and_data)

DEFAULT_NONCE_KEY = 0


class UserOperationBuilder:
    chain_reader: ChainReader
    sender_address: Address
    paymaster: Address | None
    gas_config: GasConfig

    def __init__(
        self,
        chain_reader: ChainReader,
        sender_address: Address,
        paymaster: Address | None = None,
        gas_config: GasConfig = DEFAULT_GAS_CONFIG,
    ) -> None:
        self.chain_reader = chain_reader
        self.sender_address = Address(to_checksum_address(sender_address))
        self.paymaster = (
            None if paymaster is None
            else Address(to_checksum_address(paymaster))
        )
        self.gas_config = gas_config

    async def build(
        self, target: Address, value: int, data: bytes
    ) -> UserOperationV7:
        try:
            call_data = encode_execute_calldata(target, value, data)
        except (ValueError, EncodingError) as excp:
            raise BuildException(
                BuildExceptionCode.InvalidCall, f"Invalid execute call: {excp}"
            ) from excp
        return await self.build_with_call_data(call_data)

    async def build_batch(
        self, calls: list[tuple[Address, int, bytes]]
    ) -> UserOperationV7:
        if len(calls) == 0:
            raise BuildException(
                BuildExceptionCode.InvalidCall, "executeBatch needs at least one call")
        targets = [target for target, _, _ in calls]
        values = [value for _, value, _ in calls]
        datas = [data for _, _, data in calls]
        try:
            call_data = encode_execute_batch_calldata(targets, values, datas)
        except (ValueError, EncodingError) as excp:
            raise BuildException(
                BuildExceptionCode.InvalidCall, f"Invalid executeBatch call: {excp}"
            ) from excp
        return await self.build_with_call_data(call_data)

    async def build_with_call_data(self, call_data: bytes) -> UserOperationV7:
        nonce = await self.get_nonce()

        paymaster_and_data = pack_paymaster_and_data(
            self.paymaster,
            self.gas_config.paymaster_verification_gas_limit,
            self.gas_config.paymaster_post_op_gas_limit,
        )

        user_operation = UserOperationV7(
            sender_address=self.sender_address,
            nonce=nonce,
            init_code=bytes(0),
            call_data=call_data,
            account_gas_limits=pack_account_gas_limits(
                self.gas_config.verification_gas_limit,
                self.gas_config.call_gas_limit,
            ),
            pre_verification_gas=self.gas_config.pre_verification_gas,
            gas_fees=pack_gas_fees(
                self.gas_config.max_priority_fee_per_gas,
                self.gas_config.max_fee_per_gas,
            ),
            paymaster_and_data=paymaster_and_data,
        )
        logging.info(
            f"UserOperation built for sender {self.sender_address} "
            f"with nonce {nonce}"
        )
        return user_operation

    async def get_nonce(self) -> int:
        try:
            return await self.chain_reader.get_nonce(
                self.sender_address, DEFAULT_NONCE_KEY)
        except ChainReadException as excp:
            raise BuildException(
                BuildExceptionCode.NonceUnavailable,
                f"Failed to read nonce for {self.sender_address}: {excp.message}",
            ) from excp


async def get_user_operation_hash(
    chain_reader: ChainReader, user_operation: UserOperationV7
) -> bytes:
    """
    Ask the EntryPoint for the canonical hash of a fully populated,
    unsigned operation. The hash is never recomputed locally.
    """
    if user_operation.is_signed:
        raise BuildException(
            BuildExceptionCode.AlreadySigned,
            "UserOperation hash must be resolved before signing",
        )
    try:
        return await chain_reader.get_user_operation_hash(user_operation)
    except ChainReadException as excp:
        raise BuildException(
            BuildExceptionCode.HashUnavailable,
            f"Failed to resolve UserOperation hash: {excp.message}",
        ) from excp
