import asyncio
import logging
from typing import Any, Awaitable, Callable

import aiohttp

from aa_wallet.client.exceptions import (
    BundlerException, BundlerExceptionCode, ReceiptTimeoutException)
from aa_wallet.typing import Address, TransactionHash, UserOperationHash
from aa_wallet.user_operation.models import UserOperationReceiptInfo
from aa_wallet.user_operation.user_operation import UserOperationV7
from aa_wallet.utils.eth_client_utils import (
    normalize_rpc_error, send_rpc_request)
from aa_wallet.utils.retry import PollTimeout, poll_until

RECEIPT_POLL_INTERVAL_SECONDS = 2
RECEIPT_MAX_POLL_ATTEMPTS = 60
RETRYABLE_RECEIPT_ERRORS = (
    BundlerExceptionCode.Unreachable,
    BundlerExceptionCode.Rejected,
)


class BundlerClient:
    bundler_url: str
    entrypoint: Address
    poll_interval: float
    max_poll_attempts: int

    def __init__(
        self,
        bundler_url: str,
        entrypoint: Address,
        poll_interval: float = RECEIPT_POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = RECEIPT_MAX_POLL_ATTEMPTS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.bundler_url = bundler_url
        self.entrypoint = entrypoint
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.sleep = sleep

    async def send_user_operation(
        self, user_operation: UserOperationV7
    ) -> UserOperationHash:
        if not user_operation.is_signed:
            raise BundlerException(
                BundlerExceptionCode.UnsignedOperation,
                "UserOperation must be signed before submission",
            )
        logging.info("Sending UserOperation to bundler...")
        user_operation_hash = await self._bundler_rpc(
            "eth_sendUserOperation",
            [user_operation.get_user_operation_json(), self.entrypoint],
        )
        user_operation.seal()
        logging.info(f"UserOperation submitted: {user_operation_hash}")
        return UserOperationHash(user_operation_hash)

    async def get_user_operation_receipt(
        self, user_operation_hash: UserOperationHash
    ) -> UserOperationReceiptInfo | None:
        result = await self._bundler_rpc(
            "eth_getUserOperationReceipt", [user_operation_hash])
        if not result:
            return None
        try:
            return UserOperationReceiptInfo.from_rpc_result(result)
        except (KeyError, TypeError, AttributeError) as excp:
            raise BundlerException(
                BundlerExceptionCode.MissingResult,
                f"Malformed UserOperation receipt for {user_operation_hash}: "
                f"{excp!r}",
            ) from excp

    async def wait_for_user_operation_receipt(
        self, user_operation_hash: UserOperationHash
    ) -> TransactionHash:
        try:
            receipt, attempts = await poll_until(
                lambda: self.get_user_operation_receipt(user_operation_hash),
                self.max_poll_attempts,
                self.poll_interval,
                self.sleep,
                is_retryable_receipt_error,
            )
        except PollTimeout as excp:
            raise ReceiptTimeoutException(
                BundlerExceptionCode.Timeout,
                f"Timeout waiting for UserOperation receipt after "
                f"{excp.attempts} attempts, {user_operation_hash} may still "
                "be included later",
                user_operation_hash,
                excp.attempts,
            ) from excp

        transaction_hash = receipt.receipt.transactionHash
        logging.info(
            f"UserOperation {user_operation_hash} included in transaction "
            f"{transaction_hash} after {attempts} attempts"
        )
        return transaction_hash

    async def _bundler_rpc(self, method: str, params: list) -> Any:
        try:
            response = await send_rpc_request(self.bundler_url, method, params)
        except (aiohttp.ClientError, TimeoutError, ValueError) as excp:
            logging.error(f"Bundler request {method} failed: {excp}")
            raise BundlerException(
                BundlerExceptionCode.Unreachable, str(excp)) from excp

        if "error" in response and response["error"]:
            error_message = normalize_rpc_error(response["error"])
            logging.error(f"Bundler error for {method}: {error_message}")
            raise BundlerException(BundlerExceptionCode.Rejected, error_message)
        if "result" not in response:
            raise BundlerException(
                BundlerExceptionCode.MissingResult, "No result from bundler")
        return response["result"]


def is_retryable_receipt_error(excp: Exception) -> bool:
    return (
        isinstance(excp, BundlerException) and
        excp.exception_code in RETRYABLE_RECEIPT_ERRORS
    )
