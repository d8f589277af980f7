from dataclasses import dataclass, field
import logging
import time

from eth_account import Account

from aa_wallet.chain.wallet import account_from_key
from aa_wallet.typing import Address


@dataclass
class SessionKeyData:
    """
    Ephemeral key pair that can sign on behalf of the account once it is
    registered on-chain. The private key only lives in memory.
    """
    private_key: str = field(repr=False)
    address: Address
    expires_at: int
    one_time: bool
    used: bool = False

    def is_expired(self, now: int | None = None) -> bool:
        if now is None:
            now = int(time.time())
        return now >= self.expires_at

    def mark_used(self) -> None:
        if self.one_time:
            self.used = True


def generate_session_key(
    expires_in_minutes: int = 5,
    one_time: bool = False,
    now: int | None = None,
) -> SessionKeyData:
    if now is None:
        now = int(time.time())
    account = Account.create()
    session_key = SessionKeyData(
        private_key="0x" + bytes(account.key).hex(),
        address=Address(account.address),
        expires_at=now + expires_in_minutes * 60,
        one_time=one_time,
    )
    logging.info(
        f"Session key generated: {session_key.address}, "
        f"expires at {session_key.expires_at}, one time: {one_time}"
    )
    return session_key


def session_key_from_private_key(
    private_key: str, expires_at: int, one_time: bool
) -> SessionKeyData:
    account = account_from_key(private_key)
    return SessionKeyData(
        private_key=private_key,
        address=Address(account.address),
        expires_at=expires_at,
        one_time=one_time,
    )
