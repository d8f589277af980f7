from dataclasses import dataclass
import logging

from eth_utils import to_checksum_address

from aa_wallet.chain.wallet import (
    Wallet, account_from_key, sign_personal_message_with_key)
from aa_wallet.client.exceptions import (
    USER_REJECTED_REQUEST, SigningException, SigningExceptionCode,
    WalletRequestException)
from aa_wallet.typing import Address
from .envelope import (
    OwnersSignature, SessionSignature, encode_signature_envelope)
from .session_key import SessionKeyData


@dataclass(frozen=True)
class OwnerSignature:
    address: Address
    signature: bytes


async def sign_with_wallet(
    wallet: Wallet, account: Address, user_operation_hash: bytes
) -> bytes:
    try:
        return await wallet.sign_personal_message(account, user_operation_hash)
    except WalletRequestException as excp:
        if excp.code == USER_REJECTED_REQUEST:
            raise SigningException(
                SigningExceptionCode.Rejected,
                f"Signature request rejected by {account}",
            ) from excp
        raise SigningException(
            SigningExceptionCode.NoSigner, excp.message) from excp


async def sign_user_operation_single_owner(
    wallet: Wallet,
    user_operation_hash: bytes,
    owner: Address | None,
) -> bytes:
    if owner is None:
        raise SigningException(
            SigningExceptionCode.NoSigner, "Wallet not connected")
    logging.info(f"Signing UserOperation with owner {owner}")
    signature = await sign_with_wallet(wallet, owner, user_operation_hash)
    return encode_signature_envelope(
        OwnersSignature(signers=(owner,), signatures=(signature,))
    )


async def sign_user_operation_multi_sig(
    wallet: Wallet,
    user_operation_hash: bytes,
    connected_account: Address | None,
    owners: list[Address],
    additional_signatures: list[OwnerSignature] | None = None,
) -> bytes:
    """
    Collect the connected wallet signature (when it is an owner) followed
    by the additional signatures, in collection order.
    """
    owners_lowercase = {owner.lower() for owner in owners}
    signers: list[Address] = []
    signatures: list[bytes] = []

    if (
        connected_account is not None and
        connected_account.lower() in owners_lowercase
    ):
        logging.info(f"Signing with connected wallet {connected_account}")
        signers.append(connected_account)
        signatures.append(
            await sign_with_wallet(
                wallet, connected_account, user_operation_hash)
        )

    for owner_signature in additional_signatures or []:
        if owner_signature.address.lower() in {s.lower() for s in signers}:
            raise SigningException(
                SigningExceptionCode.DuplicateSigner,
                f"Duplicate signer {owner_signature.address}",
            )
        logging.info(f"Adding signature from {owner_signature.address}")
        signers.append(owner_signature.address)
        signatures.append(owner_signature.signature)

    if len(signers) == 0:
        raise SigningException(
            SigningExceptionCode.NoSigner,
            "No owner signature available, connect an owner wallet",
        )
    return encode_signature_envelope(
        OwnersSignature(signers=tuple(signers), signatures=tuple(signatures))
    )


def sign_user_operation_with_session_key(
    session_key: SessionKeyData,
    user_operation_hash: bytes,
    now: int | None = None,
) -> bytes:
    if session_key.is_expired(now):
        raise SigningException(
            SigningExceptionCode.SessionKeyExpired,
            f"Session key {session_key.address} expired at {session_key.expires_at}",
        )
    if session_key.one_time and session_key.used:
        raise SigningException(
            SigningExceptionCode.SessionKeyUsed,
            f"One time session key {session_key.address} was already used",
        )
    account = account_from_key(session_key.private_key)
    if account.address.lower() != session_key.address.lower():
        raise SigningException(
            SigningExceptionCode.NoSigner,
            f"Session key private key does not match {session_key.address}",
        )
    logging.info(f"Signing UserOperation with session key {session_key.address}")
    signature = sign_personal_message_with_key(
        session_key.private_key, user_operation_hash)
    return encode_signature_envelope(
        SessionSignature(session_key=session_key.address, signature=signature)
    )


def simulate_owner_signature(
    private_key: str, user_operation_hash: bytes
) -> OwnerSignature:
    """Sign as an additional owner from a raw key, for demos and tests."""
    account = account_from_key(private_key)
    return OwnerSignature(
        address=Address(to_checksum_address(account.address)),
        signature=sign_personal_message_with_key(private_key, user_operation_hash),
    )
