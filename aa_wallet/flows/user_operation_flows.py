import logging
from typing import Awaitable, Callable

from aa_wallet.bundler.bundler_client import BundlerClient
from aa_wallet.chain.chain_reader import ChainReader
from aa_wallet.chain.wallet import Wallet
from aa_wallet.client.exceptions import (
    AAWalletException, BundlerException, ChainReadException,
    SigningException, SigningExceptionCode)
from aa_wallet.config.gas import DEFAULT_GAS_CONFIG, GasConfig
from aa_wallet.config.networks import NetworkAddresses
from aa_wallet.signature.envelope import decode_signature_envelope
from aa_wallet.signature.session_key import SessionKeyData
from aa_wallet.signature.signing import (
    sign_user_operation_multi_sig, sign_user_operation_single_owner,
    sign_user_operation_with_session_key, simulate_owner_signature)
from aa_wallet.typing import Address, TransactionHash
from aa_wallet.user_operation.calldata import (
    encode_revoke_session_key_calldata, encode_safe_mint_calldata,
    encode_set_session_key_calldata)
from aa_wallet.user_operation.models import SessionKeyStatus
from aa_wallet.user_operation.user_operation import UserOperationV7
from aa_wallet.user_operation.user_operation_builder import (
    UserOperationBuilder, get_user_operation_hash)
from aa_wallet.utils.format import truncate_address, truncate_hash
from .progress import ProgressLevel, ProgressReporter


class SmartAccountFlows:
    """
    Use case level procedures against the configured smart account.
    Each flow builds, hashes, signs, submits and waits for one
    UserOperation, reporting every step to the progress reporter.
    """
    chain_reader: ChainReader
    bundler_client: BundlerClient
    addresses: NetworkAddresses
    reporter: ProgressReporter
    wallet: Wallet | None
    smart_account: Address
    builder: UserOperationBuilder

    def __init__(
        self,
        chain_reader: ChainReader,
        bundler_client: BundlerClient,
        addresses: NetworkAddresses,
        reporter: ProgressReporter,
        wallet: Wallet | None = None,
        gas_config: GasConfig = DEFAULT_GAS_CONFIG,
        use_paymaster: bool = True,
    ) -> None:
        self.chain_reader = chain_reader
        self.bundler_client = bundler_client
        self.addresses = addresses
        self.reporter = reporter
        self.wallet = wallet
        self.smart_account = addresses.require("smart_account")
        paymaster = addresses.require("paymaster") if use_paymaster else None
        self.builder = UserOperationBuilder(
            chain_reader, self.smart_account, paymaster, gas_config)

    async def mint_nft_single_owner(
        self, owner: Address | None, token_id: int
    ) -> TransactionHash:
        self.reporter.info("=== Mint NFT (Single Owner) ===")
        transaction_hash = await self._send_user_operation(
            lambda: self._build_mint(token_id),
            lambda user_operation_hash: self._sign_single_owner(
                owner, user_operation_hash),
        )
        self._report_minted(f"NFT #{token_id} minted!", transaction_hash)
        return transaction_hash

    async def mint_nft_multi_sig(
        self,
        owner: Address | None,
        token_id: int,
        second_owner_private_key: str,
    ) -> TransactionHash:
        self.reporter.info("=== Mint NFT (Multi-Sig) ===")

        async def sign(user_operation_hash: bytes) -> bytes:
            owners = await self.chain_reader.get_owners(self.smart_account)
            threshold = await self.chain_reader.get_threshold(self.smart_account)

            second_signature = simulate_owner_signature(
                second_owner_private_key, user_operation_hash)
            if second_signature.address.lower() not in {o.lower() for o in owners}:
                raise SigningException(
                    SigningExceptionCode.NotOwner,
                    f"{second_signature.address} is not an owner of "
                    f"{self.smart_account}",
                )
            self.reporter.info(
                f"Simulated owner 2: {truncate_address(second_signature.address)}")

            self.reporter.info(f"Multi-sig signing with {len(owners)} owners...")
            signature = await sign_user_operation_multi_sig(
                self._require_wallet(),
                user_operation_hash,
                owner,
                owners,
                [second_signature],
            )
            signers_count = len(decode_signature_envelope(signature).signers)
            if signers_count < threshold:
                self.reporter.warn(
                    f"Only {signers_count} of {threshold} required signatures",
                    "The account will reject this UserOperation",
                )
            self.reporter.success(
                f"Multi-sig complete: {signers_count} signatures")
            return signature

        transaction_hash = await self._send_user_operation(
            lambda: self._build_mint(token_id),
            sign,
        )
        self._report_minted(
            f"NFT #{token_id} minted with multi-sig!", transaction_hash)
        return transaction_hash

    async def set_session_key_on_chain(
        self, owner: Address | None, session_key: SessionKeyData
    ) -> TransactionHash:
        self.reporter.info("=== Setting Session Key On-Chain ===")
        transaction_hash = await self._send_user_operation(
            lambda: self.builder.build(
                self.smart_account,
                0,
                encode_set_session_key_calldata(
                    session_key.address,
                    session_key.expires_at,
                    session_key.one_time,
                ),
            ),
            lambda user_operation_hash: self._sign_single_owner(
                owner, user_operation_hash),
        )
        self.reporter.success(
            "Session key registered on-chain!",
            f"Key: {truncate_address(session_key.address)}",
        )
        self._report_explorer_link(transaction_hash)
        return transaction_hash

    async def revoke_session_key_on_chain(
        self, owner: Address | None, session_key_address: Address
    ) -> TransactionHash:
        self.reporter.info("=== Revoking Session Key On-Chain ===")
        transaction_hash = await self._send_user_operation(
            lambda: self.builder.build(
                self.smart_account,
                0,
                encode_revoke_session_key_calldata(session_key_address),
            ),
            lambda user_operation_hash: self._sign_single_owner(
                owner, user_operation_hash),
        )
        self.reporter.success(
            "Session key revoked on-chain!",
            f"Key: {truncate_address(session_key_address)}",
        )
        self._report_explorer_link(transaction_hash)
        return transaction_hash

    async def mint_nft_with_session_key(
        self, session_key: SessionKeyData, token_id: int
    ) -> TransactionHash:
        self.reporter.info("=== Mint NFT (Session Key) ===")

        async def sign(user_operation_hash: bytes) -> bytes:
            self.reporter.info(
                f"Signing with session key: {truncate_address(session_key.address)}")
            signature = sign_user_operation_with_session_key(
                session_key, user_operation_hash)
            self.reporter.success("Session key signature complete")
            return signature

        transaction_hash = await self._send_user_operation(
            lambda: self._build_mint(token_id),
            sign,
            on_submitted=session_key.mark_used,
        )
        self._report_minted(
            f"NFT #{token_id} minted with session key!", transaction_hash)
        return transaction_hash

    async def execute_batch_single_owner(
        self,
        owner: Address | None,
        calls: list[tuple[Address, int, bytes]],
    ) -> TransactionHash:
        self.reporter.info(f"=== Execute Batch ({len(calls)} calls) ===")
        transaction_hash = await self._send_user_operation(
            lambda: self.builder.build_batch(calls),
            lambda user_operation_hash: self._sign_single_owner(
                owner, user_operation_hash),
        )
        self.reporter.success(f"Batch of {len(calls)} calls executed!")
        self._report_explorer_link(transaction_hash)
        return transaction_hash

    async def check_session_key_status(
        self, session_key_address: Address
    ) -> SessionKeyStatus:
        try:
            status = await self.chain_reader.get_session_key(
                self.smart_account, session_key_address)
        except ChainReadException as excp:
            self.reporter.error("Failed to read session key", excp.message)
            raise
        self.reporter.info(
            f"Session key {truncate_address(session_key_address)}",
            f"Expires: {status.expires_at}, OneTime: {status.one_time}, "
            f"Used: {status.used}",
        )
        return status

    async def _send_user_operation(
        self,
        build: Callable[[], Awaitable[UserOperationV7]],
        sign: Callable[[bytes], Awaitable[bytes]],
        on_submitted: Callable[[], None] | None = None,
    ) -> TransactionHash:
        try:
            self.reporter.info("Building UserOperation...")
            user_operation = await build()
            self.reporter.info(f"Nonce: {user_operation.nonce}")
            self.reporter.success("UserOp built")

            user_operation_hash = await get_user_operation_hash(
                self.chain_reader, user_operation)
            self.reporter.info(
                f"UserOp hash: {truncate_hash('0x' + user_operation_hash.hex())}")

            user_operation.signature = await sign(user_operation_hash)
        except AAWalletException as excp:
            self.reporter.error("UserOperation preparation failed", excp.message)
            raise

        submit_event_id = self.reporter.pending("Submitting to bundler...")
        try:
            operation_hash = await self.bundler_client.send_user_operation(
                user_operation)
        except BundlerException as excp:
            self.reporter.update(
                submit_event_id, ProgressLevel.error,
                "Bundler rejected UserOp", excp.message)
            raise
        self.reporter.update(
            submit_event_id, ProgressLevel.success,
            "UserOp submitted", f"Hash: {truncate_hash(operation_hash)}")
        if on_submitted is not None:
            on_submitted()

        wait_event_id = self.reporter.pending("Waiting for confirmation...")
        try:
            transaction_hash = (
                await self.bundler_client.wait_for_user_operation_receipt(
                    operation_hash)
            )
        except BundlerException as excp:
            self.reporter.update(
                wait_event_id, ProgressLevel.error,
                "Transaction failed", excp.message)
            raise
        self.reporter.update(
            wait_event_id, ProgressLevel.success,
            "Transaction confirmed!", f"Tx: {truncate_hash(transaction_hash)}")
        logging.info(f"UserOperation {operation_hash} -> {transaction_hash}")
        return transaction_hash

    async def _build_mint(self, token_id: int) -> UserOperationV7:
        return await self.builder.build(
            self.addresses.require("nft"),
            0,
            encode_safe_mint_calldata(self.smart_account, token_id),
        )

    async def _sign_single_owner(
        self, owner: Address | None, user_operation_hash: bytes
    ) -> bytes:
        if owner is None:
            raise SigningException(
                SigningExceptionCode.NoSigner, "Wallet not connected")
        self.reporter.info(f"Signing with owner: {truncate_address(owner)}")
        signature = await sign_user_operation_single_owner(
            self._require_wallet(), user_operation_hash, owner)
        self.reporter.success("Signature complete")
        return signature

    def _require_wallet(self) -> Wallet:
        if self.wallet is None:
            raise SigningException(
                SigningExceptionCode.NoSigner, "Wallet not connected")
        return self.wallet

    def _report_minted(self, message: str, transaction_hash: TransactionHash):
        self.reporter.success(message, f"Tx: {transaction_hash}")
        self._report_explorer_link(transaction_hash)

    def _report_explorer_link(self, transaction_hash: TransactionHash) -> None:
        self.reporter.success(
            "Tx on explorer", self.addresses.transaction_url(transaction_hash))
