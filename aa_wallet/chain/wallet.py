from abc import ABC, abstractmethod
import logging

from eth_account import Account, messages
from eth_account.signers.local import LocalAccount

from aa_wallet.client.exceptions import (
    UNRECOGNIZED_CHAIN, NetworkSwitchException, NetworkSwitchExceptionCode,
    SigningException, SigningExceptionCode, WalletRequestException)
from aa_wallet.flows.progress import ProgressReporter
from aa_wallet.typing import Address
from aa_wallet.utils.format import truncate_address


class Wallet(ABC):
    """
    Externally owned account provider. Implementations raise
    WalletRequestException with EIP-1193 codes when a request is refused.
    """

    @abstractmethod
    async def request_accounts(self) -> list[Address]:
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        pass

    @abstractmethod
    async def switch_chain(self, chain_id: int) -> None:
        pass

    @abstractmethod
    async def sign_personal_message(self, account: Address, raw: bytes) -> bytes:
        """sign raw bytes with the "\\x19Ethereum Signed Message:\\n" prefix"""
        pass


def account_from_key(private_key: str | bytes) -> LocalAccount:
    try:
        return Account.from_key(private_key)
    except ValueError as excp:
        raise SigningException(
            SigningExceptionCode.NoSigner, f"Invalid private key: {excp}"
        ) from excp


def sign_personal_message_with_key(private_key: str | bytes, raw: bytes) -> bytes:
    message = messages.encode_defunct(primitive=raw)
    signed_message = Account.sign_message(message, private_key=private_key)
    return bytes(signed_message.signature)


class LocalAccountWallet(Wallet):
    """Wallet backed by private keys held in memory."""
    accounts: dict[str, LocalAccount]
    chain_id: int
    supported_chain_ids: set[int]

    def __init__(
        self,
        private_keys: list[str],
        chain_id: int,
        supported_chain_ids: set[int] | None = None,
    ) -> None:
        self.accounts = {}
        for private_key in private_keys:
            account = account_from_key(private_key)
            self.accounts[account.address.lower()] = account
        self.chain_id = chain_id
        if supported_chain_ids is None:
            supported_chain_ids = {chain_id}
        self.supported_chain_ids = supported_chain_ids

    async def request_accounts(self) -> list[Address]:
        return [Address(account.address) for account in self.accounts.values()]

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def switch_chain(self, chain_id: int) -> None:
        if chain_id not in self.supported_chain_ids:
            raise WalletRequestException(
                UNRECOGNIZED_CHAIN,
                f"Unrecognized chain ID {hex(chain_id)}",
            )
        self.chain_id = chain_id

    async def sign_personal_message(self, account: Address, raw: bytes) -> bytes:
        local_account = self.accounts.get(account.lower())
        if local_account is None:
            raise SigningException(
                SigningExceptionCode.NoSigner,
                f"No key available for account {account}",
            )
        return sign_personal_message_with_key(local_account.key, raw)


async def connect_wallet(
    wallet: Wallet, chain_id: int, reporter: ProgressReporter
) -> Address:
    """
    Request the wallet accounts and make sure the wallet is on chain_id.
    Returns the first account.
    """
    event_id = reporter.pending("Connecting wallet...")
    accounts = await wallet.request_accounts()
    if len(accounts) == 0:
        reporter.update(event_id, "error", "No accounts found")
        raise SigningException(
            SigningExceptionCode.NoSigner, "Wallet returned no accounts")

    current_chain_id = await wallet.get_chain_id()
    if current_chain_id != chain_id:
        reporter.info(f"Switching to chain {chain_id}...")
        try:
            await wallet.switch_chain(chain_id)
        except WalletRequestException as excp:
            if excp.code == UNRECOGNIZED_CHAIN:
                reporter.update(
                    event_id, "error", "Please add the network to the wallet")
                raise NetworkSwitchException(
                    NetworkSwitchExceptionCode.UnrecognizedChain,
                    f"Wallet does not know chain {chain_id}, add the network first",
                ) from excp
            reporter.update(event_id, "error", "Connection failed", excp.message)
            raise NetworkSwitchException(
                NetworkSwitchExceptionCode.SwitchFailed, excp.message) from excp

    address = accounts[0]
    logging.info(f"Wallet connected with account {address}")
    reporter.update(
        event_id, "success", f"Connected: {truncate_address(address)}")
    return address
