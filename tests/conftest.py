import pytest
from eth_account import Account

from aa_wallet.bundler.bundler_client import BundlerClient
from aa_wallet.chain.chain_reader import ChainReader
from aa_wallet.chain.wallet import LocalAccountWallet
from aa_wallet.client.exceptions import ChainReadException
from aa_wallet.config.networks import NETWORKS
from aa_wallet.flows.progress import ProgressLog
from aa_wallet.user_operation.models import SessionKeyStatus

SEPOLIA = NETWORKS["sepolia"]

OWNER_KEY = "0x" + "11" * 32
SECOND_OWNER_KEY = "0x" + "22" * 32
OUTSIDER_KEY = "0x" + "33" * 32

OWNER = Account.from_key(OWNER_KEY).address
SECOND_OWNER = Account.from_key(SECOND_OWNER_KEY).address
OUTSIDER = Account.from_key(OUTSIDER_KEY).address

USER_OPERATION_HASH = bytes.fromhex("ab" * 32)
SUBMITTED_HASH = "0x" + "aa" * 32
TRANSACTION_HASH = "0x" + "bb" * 32


class FakeChainReader(ChainReader):
    """Chain reader returning fixture values, failing on demand."""

    def __init__(
        self,
        nonce=7,
        user_operation_hash=USER_OPERATION_HASH,
        owners=None,
        threshold=1,
        balance=10**18,
        code=b"\x60\x80",
        chain_id=SEPOLIA.chain_id,
    ):
        self.nonce = nonce
        self.user_operation_hash = user_operation_hash
        self.owners = [OWNER, SECOND_OWNER] if owners is None else owners
        self.threshold = threshold
        self.balance = balance
        self.code = code
        self.chain_id = chain_id
        self.session_keys = {}
        self.fail_on = set()
        self.calls = []
        self.hashed_operations = []

    def _record(self, method):
        self.calls.append(method)
        if method in self.fail_on:
            raise ChainReadException(method, "execution reverted")

    async def get_nonce(self, sender, key):
        self._record("get_nonce")
        return self.nonce

    async def get_user_operation_hash(self, user_operation):
        self._record("get_user_operation_hash")
        self.hashed_operations.append(user_operation)
        return self.user_operation_hash

    async def get_session_key(self, account, session_key):
        self._record("get_session_key")
        return self.session_keys.get(
            session_key.lower(), SessionKeyStatus(0, False, False))

    async def get_owners(self, account):
        self._record("get_owners")
        return list(self.owners)

    async def get_threshold(self, account):
        self._record("get_threshold")
        return self.threshold

    async def get_balance(self, address):
        self._record("get_balance")
        return self.balance

    async def get_code(self, address):
        self._record("get_code")
        return self.code

    async def get_chain_id(self):
        self._record("get_chain_id")
        return self.chain_id


class ScriptedRpc:
    """
    Stand-in for send_rpc_request. Responses are queued per method, the
    last queued response of a method is repeated once the queue drains.
    """

    def __init__(self):
        self.responses = {}
        self.requests = []

    def add(self, method, *responses):
        self.responses.setdefault(method, []).extend(responses)

    def count(self, method):
        return len([r for r in self.requests if r[1] == method])

    async def __call__(self, url, method, params=None):
        self.requests.append((url, method, params))
        queue = self.responses[method]
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def chain_reader():
    return FakeChainReader()


@pytest.fixture
def progress_log():
    return ProgressLog()


@pytest.fixture
def owner_wallet():
    return LocalAccountWallet([OWNER_KEY], SEPOLIA.chain_id)


@pytest.fixture
def bundler_rpc(monkeypatch):
    rpc = ScriptedRpc()
    monkeypatch.setattr(
        "aa_wallet.bundler.bundler_client.send_rpc_request", rpc)
    return rpc


@pytest.fixture
def node_rpc(monkeypatch):
    rpc = ScriptedRpc()
    monkeypatch.setattr("aa_wallet.chain.chain_reader.send_rpc_request", rpc)
    return rpc


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def bundler_client(bundler_rpc, recording_sleep):
    return BundlerClient(
        "http://bundler.test/rpc", SEPOLIA.entrypoint, sleep=recording_sleep)
