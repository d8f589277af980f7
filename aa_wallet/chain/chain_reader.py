from abc import ABC, abstractmethod
import logging
from typing import Any

import aiohttp
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from aa_wallet.client.exceptions import ChainReadException
from aa_wallet.typing import Address
from aa_wallet.user_operation.calldata import selector
from aa_wallet.user_operation.models import SessionKeyStatus
from aa_wallet.user_operation.user_operation import UserOperationV7
from aa_wallet.utils.eth_client_utils import (
    normalize_rpc_error, send_rpc_request)

PACKED_USER_OPERATION_TYPE = (
    "(address,uint256,bytes,bytes,bytes32,uint256,bytes32,bytes,bytes)"
)
GET_NONCE_SIGNATURE = "getNonce(address,uint192)"
GET_USER_OP_HASH_SIGNATURE = f"getUserOpHash({PACKED_USER_OPERATION_TYPE})"
GET_SESSION_KEY_SIGNATURE = "getSessionKey(address)"
GET_OWNERS_SIGNATURE = "getOwners()"
THRESHOLD_SIGNATURE = "threshold()"

ERROR_STRING_SELECTOR = "0x08c379a0"  # Error(string)


class ChainReader(ABC):
    """Read only view of the chain needed to build and sign operations."""

    @abstractmethod
    async def get_nonce(self, sender: Address, key: int) -> int:
        pass

    @abstractmethod
    async def get_user_operation_hash(
        self, user_operation: UserOperationV7
    ) -> bytes:
        pass

    @abstractmethod
    async def get_session_key(
        self, account: Address, session_key: Address
    ) -> SessionKeyStatus:
        pass

    @abstractmethod
    async def get_owners(self, account: Address) -> list[Address]:
        pass

    @abstractmethod
    async def get_threshold(self, account: Address) -> int:
        pass

    @abstractmethod
    async def get_balance(self, address: Address) -> int:
        pass

    @abstractmethod
    async def get_code(self, address: Address) -> bytes | None:
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        pass


class JsonRpcChainReader(ChainReader):
    ethereum_node_url: str
    entrypoint: Address

    def __init__(self, ethereum_node_url: str, entrypoint: Address) -> None:
        self.ethereum_node_url = ethereum_node_url
        self.entrypoint = entrypoint

    async def get_nonce(self, sender: Address, key: int) -> int:
        result = await self._eth_call(
            self.entrypoint,
            selector(GET_NONCE_SIGNATURE) +
            encode(["address", "uint192"], [to_checksum_address(sender), key]),
        )
        return self._decode(GET_NONCE_SIGNATURE, ["uint256"], result)[0]

    async def get_user_operation_hash(
        self, user_operation: UserOperationV7
    ) -> bytes:
        result = await self._eth_call(
            self.entrypoint,
            selector(GET_USER_OP_HASH_SIGNATURE) +
            encode([PACKED_USER_OPERATION_TYPE], [user_operation.to_list()]),
        )
        return self._decode(GET_USER_OP_HASH_SIGNATURE, ["bytes32"], result)[0]

    async def get_session_key(
        self, account: Address, session_key: Address
    ) -> SessionKeyStatus:
        result = await self._eth_call(
            account,
            selector(GET_SESSION_KEY_SIGNATURE) +
            encode(["address"], [to_checksum_address(session_key)]),
        )
        expires_at, one_time, used = self._decode(
            GET_SESSION_KEY_SIGNATURE, ["uint48", "bool", "bool"], result)
        return SessionKeyStatus(
            expires_at=expires_at, one_time=one_time, used=used)

    async def get_owners(self, account: Address) -> list[Address]:
        result = await self._eth_call(account, selector(GET_OWNERS_SIGNATURE))
        owners = self._decode(GET_OWNERS_SIGNATURE, ["address[]"], result)[0]
        return [Address(to_checksum_address(owner)) for owner in owners]

    async def get_threshold(self, account: Address) -> int:
        result = await self._eth_call(account, selector(THRESHOLD_SIGNATURE))
        return self._decode(THRESHOLD_SIGNATURE, ["uint256"], result)[0]

    async def get_balance(self, address: Address) -> int:
        result = await self._request("eth_getBalance", [address, "latest"])
        return int(result, 16)

    async def get_code(self, address: Address) -> bytes | None:
        result = await self._request("eth_getCode", [address, "latest"])
        if result in (None, "0x"):
            return None
        return bytes.fromhex(result[2:])

    async def get_chain_id(self) -> int:
        result = await self._request("eth_chainId", [])
        return int(result, 16)

    async def _eth_call(self, to: Address, call_data: bytes) -> bytes:
        params = [
            {
                "to": to,
                "data": "0x" + call_data.hex(),
            },
            "latest",
        ]
        result = await self._request("eth_call", params)
        return bytes.fromhex(result[2:])

    @staticmethod
    def _decode(function_signature: str, types: list[str], result: bytes) -> tuple:
        # an undeployed contract answers eth_call with "0x"
        if len(result) == 0:
            raise ChainReadException(
                function_signature,
                "Empty result, the contract may not be deployed",
            )
        try:
            return decode(types, result)
        except DecodingError as excp:
            raise ChainReadException(
                function_signature, f"Invalid result: {excp}") from excp

    async def _request(self, method: str, params: list) -> Any:
        try:
            response = await send_rpc_request(
                self.ethereum_node_url, method, params)
        except (aiohttp.ClientError, TimeoutError, ValueError) as excp:
            logging.error(f"Call to node rpc {method} failed: {excp}")
            raise ChainReadException(method, str(excp)) from excp

        if "error" in response:
            raise ChainReadException(
                method, self._get_error_message(response["error"]))
        if "result" not in response:
            raise ChainReadException(method, "No result from node")
        return response["result"]

    @staticmethod
    def _get_error_message(error: Any) -> str:
        if isinstance(error, dict):
            error_data = error.get("data")
            if (
                isinstance(error_data, str) and
                error_data.startswith(ERROR_STRING_SELECTOR)
            ):
                reason = decode(["string"], bytes.fromhex(error_data[10:]))[0]
                return f"revert reason : {reason}"
        return normalize_rpc_error(error)
