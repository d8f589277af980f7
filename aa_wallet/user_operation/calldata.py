from functools import cache

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from aa_wallet.typing import Address

EXECUTE_SIGNATURE = "execute(address,uint256,bytes)"
EXECUTE_BATCH_SIGNATURE = "executeBatch(address[],uint256[],bytes[])"
SAFE_MINT_SIGNATURE = "safeMint(address,uint256)"
SET_SESSION_KEY_SIGNATURE = "setSessionKey(address,uint48,bool)"
REVOKE_SESSION_KEY_SIGNATURE = "revokeSessionKey(address)"


@cache
def selector(function_signature: str) -> bytes:
    return function_signature_to_4byte_selector(function_signature)


def encode_function_call(
    function_signature: str, types: list[str], args: list
) -> bytes:
    return selector(function_signature) + encode(types, args)


def encode_execute_calldata(target: Address, value: int, data: bytes) -> bytes:
    return encode_function_call(
        EXECUTE_SIGNATURE,
        ["address", "uint256", "bytes"],
        [to_checksum_address(target), value, data],
    )


def encode_execute_batch_calldata(
    targets: list[Address], values: list[int], datas: list[bytes]
) -> bytes:
    if not (len(targets) == len(values) == len(datas)):
        raise ValueError(
            "executeBatch targets, values and data must have the same length")
    return encode_function_call(
        EXECUTE_BATCH_SIGNATURE,
        ["address[]", "uint256[]", "bytes[]"],
        [[to_checksum_address(target) for target in targets], values, datas],
    )


def encode_safe_mint_calldata(to: Address, token_id: int) -> bytes:
    return encode_function_call(
        SAFE_MINT_SIGNATURE,
        ["address", "uint256"],
        [to_checksum_address(to), token_id],
    )


def encode_set_session_key_calldata(
    session_key: Address, expires_at: int, one_time: bool
) -> bytes:
    return encode_function_call(
        SET_SESSION_KEY_SIGNATURE,
        ["address", "uint48", "bool"],
        [to_checksum_address(session_key), expires_at, one_time],
    )


def encode_revoke_session_key_calldata(session_key: Address) -> bytes:
    return encode_function_call(
        REVOKE_SESSION_KEY_SIGNATURE,
        ["address"],
        [to_checksum_address(session_key)],
    )
