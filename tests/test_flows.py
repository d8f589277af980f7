from dataclasses import replace

import pytest
from eth_abi import decode

from aa_wallet.bundler.bundler_client import BundlerClient
from aa_wallet.client.exceptions import (
    BundlerException, ChainReadException, ConfigurationException,
    ReceiptTimeoutException, SigningException, SigningExceptionCode)
from aa_wallet.config.networks import NETWORKS
from aa_wallet.flows.progress import ProgressLevel
from aa_wallet.flows.smart_account import load_smart_account
from aa_wallet.flows.user_operation_flows import SmartAccountFlows
from aa_wallet.signature.envelope import (
    SignatureMode, decode_signature_envelope)
from aa_wallet.signature.session_key import generate_session_key
from aa_wallet.user_operation.calldata import (
    REVOKE_SESSION_KEY_SIGNATURE, SET_SESSION_KEY_SIGNATURE, selector)
from aa_wallet.user_operation.models import SessionKeyStatus

from conftest import (
    OUTSIDER_KEY, OWNER, SECOND_OWNER, SECOND_OWNER_KEY, SEPOLIA,
    SUBMITTED_HASH, TRANSACTION_HASH)

SEND_RESULT = {"jsonrpc": "2.0", "id": 1, "result": SUBMITTED_HASH}
NULL_RESULT = {"jsonrpc": "2.0", "id": 1, "result": None}
RECEIPT_RESULT = {
    "jsonrpc": "2.0",
    "id": 1,
    "result": {"receipt": {"transactionHash": TRANSACTION_HASH}},
}


@pytest.fixture
def flows(chain_reader, bundler_client, progress_log, owner_wallet):
    return SmartAccountFlows(
        chain_reader, bundler_client, SEPOLIA, progress_log, owner_wallet)


@pytest.fixture
def accepting_bundler(bundler_rpc):
    bundler_rpc.add("eth_sendUserOperation", SEND_RESULT)
    bundler_rpc.add("eth_getUserOperationReceipt", NULL_RESULT, RECEIPT_RESULT)
    return bundler_rpc


def submitted_user_operation(bundler_rpc):
    sends = [r for r in bundler_rpc.requests if r[1] == "eth_sendUserOperation"]
    assert len(sends) == 1
    user_operation_json, entrypoint = sends[0][2]
    assert entrypoint == SEPOLIA.entrypoint
    return user_operation_json


def inner_call(user_operation_json):
    call_data = bytes.fromhex(user_operation_json["callData"][2:])
    return decode(["address", "uint256", "bytes"], call_data[4:])


@pytest.mark.asyncio
async def test_mint_single_owner(flows, accepting_bundler, progress_log):
    transaction_hash = await flows.mint_nft_single_owner(OWNER, 42)

    assert transaction_hash == TRANSACTION_HASH
    messages = progress_log.messages()
    assert messages[:4] == [
        "=== Mint NFT (Single Owner) ===",
        "Building UserOperation...",
        "Nonce: 7",
        "UserOp built",
    ]
    assert messages[4].startswith("UserOp hash: 0xabababab")
    assert messages[5:] == [
        f"Signing with owner: {OWNER[:6]}...{OWNER[-4:]}",
        "Signature complete",
        "UserOp submitted",
        "Transaction confirmed!",
        "NFT #42 minted!",
        "Tx on explorer",
    ]
    assert ProgressLevel.pending not in progress_log.levels()
    assert progress_log.events[-1].details == (
        f"https://sepolia.etherscan.io/tx/{TRANSACTION_HASH}")

    user_operation_json = submitted_user_operation(accepting_bundler)
    assert user_operation_json["paymaster"].lower() == SEPOLIA.paymaster.lower()
    target, value, _ = inner_call(user_operation_json)
    assert target.lower() == SEPOLIA.nft.lower()
    assert value == 0
    envelope = decode_signature_envelope(
        bytes.fromhex(user_operation_json["signature"][2:]))
    assert envelope.mode == SignatureMode.OWNERS
    assert envelope.signers == (OWNER,)


@pytest.mark.asyncio
async def test_mint_without_paymaster(
    chain_reader, bundler_client, progress_log, owner_wallet,
    accepting_bundler
):
    flows = SmartAccountFlows(
        chain_reader, bundler_client, SEPOLIA, progress_log, owner_wallet,
        use_paymaster=False)
    await flows.mint_nft_single_owner(OWNER, 1)
    assert "paymaster" not in submitted_user_operation(accepting_bundler)


@pytest.mark.asyncio
async def test_mint_without_connected_wallet(
    chain_reader, bundler_client, progress_log, bundler_rpc
):
    flows = SmartAccountFlows(
        chain_reader, bundler_client, SEPOLIA, progress_log)
    with pytest.raises(SigningException) as excinfo:
        await flows.mint_nft_single_owner(None, 1)
    assert excinfo.value.exception_code == SigningExceptionCode.NoSigner
    assert progress_log.events[-1].level == ProgressLevel.error
    assert bundler_rpc.requests == []


@pytest.mark.asyncio
async def test_mint_multi_sig(flows, chain_reader, accepting_bundler, progress_log):
    chain_reader.threshold = 2

    await flows.mint_nft_multi_sig(OWNER, 7, SECOND_OWNER_KEY)

    envelope = decode_signature_envelope(bytes.fromhex(
        submitted_user_operation(accepting_bundler)["signature"][2:]))
    assert envelope.signers == (OWNER, SECOND_OWNER)
    assert "Multi-sig complete: 2 signatures" in progress_log.messages()
    assert ProgressLevel.warn not in progress_log.levels()


@pytest.mark.asyncio
async def test_mint_multi_sig_below_threshold_warns(
    flows, chain_reader, accepting_bundler, progress_log
):
    chain_reader.threshold = 3

    await flows.mint_nft_multi_sig(OWNER, 7, SECOND_OWNER_KEY)

    warnings = [
        event for event in progress_log.events
        if event.level == ProgressLevel.warn
    ]
    assert [event.message for event in warnings] == [
        "Only 2 of 3 required signatures"]


@pytest.mark.asyncio
async def test_mint_multi_sig_with_non_owner_key(
    flows, bundler_rpc, progress_log
):
    with pytest.raises(SigningException) as excinfo:
        await flows.mint_nft_multi_sig(OWNER, 7, OUTSIDER_KEY)

    assert excinfo.value.exception_code == SigningExceptionCode.NotOwner
    assert progress_log.events[-1].message == "UserOperation preparation failed"
    assert progress_log.events[-1].level == ProgressLevel.error
    assert bundler_rpc.requests == []


@pytest.mark.asyncio
async def test_mint_multi_sig_with_invalid_key(
    flows, bundler_rpc, progress_log
):
    with pytest.raises(SigningException) as excinfo:
        await flows.mint_nft_multi_sig(OWNER, 7, "0x" + "00" * 32)

    assert excinfo.value.exception_code == SigningExceptionCode.NoSigner
    assert progress_log.events[-1].message == "UserOperation preparation failed"
    assert progress_log.events[-1].level == ProgressLevel.error
    assert bundler_rpc.requests == []


@pytest.mark.asyncio
async def test_set_and_use_one_time_session_key(
    flows, accepting_bundler, progress_log
):
    session_key = generate_session_key(expires_in_minutes=5, one_time=True)

    await flows.set_session_key_on_chain(OWNER, session_key)

    target, _, data = inner_call(submitted_user_operation(accepting_bundler))
    assert target.lower() == SEPOLIA.smart_account.lower()
    assert data[:4] == selector(SET_SESSION_KEY_SIGNATURE)
    key, expires_at, one_time = decode(
        ["address", "uint48", "bool"], data[4:])
    assert key.lower() == session_key.address.lower()
    assert expires_at == session_key.expires_at
    assert one_time

    accepting_bundler.requests.clear()
    await flows.mint_nft_with_session_key(session_key, 9)

    envelope = decode_signature_envelope(bytes.fromhex(
        submitted_user_operation(accepting_bundler)["signature"][2:]))
    assert envelope.mode == SignatureMode.SESSION
    assert envelope.session_key == session_key.address
    assert session_key.used
    assert "NFT #9 minted with session key!" in progress_log.messages()

    with pytest.raises(SigningException) as excinfo:
        await flows.mint_nft_with_session_key(session_key, 10)
    assert excinfo.value.exception_code == SigningExceptionCode.SessionKeyUsed


@pytest.mark.asyncio
async def test_session_key_not_marked_used_when_bundler_rejects(
    flows, bundler_rpc
):
    bundler_rpc.add(
        "eth_sendUserOperation",
        {"jsonrpc": "2.0", "id": 1, "error": {"message": "AA23 reverted"}},
    )
    session_key = generate_session_key(one_time=True)

    with pytest.raises(BundlerException):
        await flows.mint_nft_with_session_key(session_key, 9)
    assert not session_key.used


@pytest.mark.asyncio
async def test_revoke_session_key(flows, accepting_bundler, progress_log):
    await flows.revoke_session_key_on_chain(OWNER, SECOND_OWNER)

    _, _, data = inner_call(submitted_user_operation(accepting_bundler))
    assert data[:4] == selector(REVOKE_SESSION_KEY_SIGNATURE)
    assert "Session key revoked on-chain!" in progress_log.messages()


@pytest.mark.asyncio
async def test_execute_batch(flows, accepting_bundler, progress_log):
    await flows.execute_batch_single_owner(
        OWNER, [(SEPOLIA.nft, 0, b"\x01"), (SEPOLIA.nft, 0, b"\x02")])
    assert "Batch of 2 calls executed!" in progress_log.messages()


@pytest.mark.asyncio
async def test_bundler_rejection_updates_pending_event(
    flows, bundler_rpc, progress_log
):
    bundler_rpc.add(
        "eth_sendUserOperation",
        {
            "jsonrpc": "2.0",
            "id": 1,
            "error": {"data": {"message": "AA24 signature error"}},
        },
    )

    with pytest.raises(BundlerException, match="AA24 signature error"):
        await flows.mint_nft_single_owner(OWNER, 1)

    last = progress_log.events[-1]
    assert last.level == ProgressLevel.error
    assert last.message == "Bundler rejected UserOp"
    assert last.details == "AA24 signature error"
    assert ProgressLevel.pending not in progress_log.levels()


@pytest.mark.asyncio
async def test_receipt_timeout_updates_pending_event(
    chain_reader, progress_log, owner_wallet, bundler_rpc, recording_sleep
):
    bundler_rpc.add("eth_sendUserOperation", SEND_RESULT)
    bundler_rpc.add("eth_getUserOperationReceipt", NULL_RESULT)
    bundler_client = BundlerClient(
        "http://bundler.test/rpc", SEPOLIA.entrypoint,
        max_poll_attempts=3, sleep=recording_sleep)
    flows = SmartAccountFlows(
        chain_reader, bundler_client, SEPOLIA, progress_log, owner_wallet)

    with pytest.raises(ReceiptTimeoutException):
        await flows.mint_nft_single_owner(OWNER, 1)

    assert progress_log.events[-1].message == "Transaction failed"
    assert progress_log.events[-1].level == ProgressLevel.error
    assert bundler_rpc.count("eth_getUserOperationReceipt") == 3


@pytest.mark.asyncio
async def test_check_session_key_status(flows, chain_reader, progress_log):
    chain_reader.session_keys[SECOND_OWNER.lower()] = SessionKeyStatus(
        expires_at=2_000, one_time=True, used=True)

    status = await flows.check_session_key_status(SECOND_OWNER)

    assert status.one_time and status.used
    assert not status.is_usable(1_000)
    assert progress_log.events[-1].details == (
        "Expires: 2000, OneTime: True, Used: True")


@pytest.mark.asyncio
async def test_check_session_key_status_failure(
    flows, chain_reader, progress_log
):
    chain_reader.fail_on.add("get_session_key")
    with pytest.raises(ChainReadException):
        await flows.check_session_key_status(SECOND_OWNER)
    assert progress_log.events[-1].level == ProgressLevel.error


def test_flows_need_configured_smart_account(
    chain_reader, bundler_client, progress_log
):
    with pytest.raises(ConfigurationException):
        SmartAccountFlows(
            chain_reader, bundler_client, NETWORKS["arbitrum_sepolia"],
            progress_log)


@pytest.mark.asyncio
async def test_load_smart_account(chain_reader, progress_log):
    chain_reader.threshold = 2

    state = await load_smart_account(chain_reader, SEPOLIA, progress_log)

    assert state.is_deployed
    assert state.address == SEPOLIA.smart_account
    assert state.balance == 10**18
    assert state.owners == [OWNER, SECOND_OWNER]
    assert state.threshold == 2
    assert progress_log.events[0].details == (
        f"https://sepolia.etherscan.io/address/{SEPOLIA.smart_account}")
    assert progress_log.events[-1].message == "Smart Account loaded"
    assert progress_log.events[-1].details == (
        "Balance: 1.0000 ETH, Owners: 2, Threshold: 2")


@pytest.mark.asyncio
async def test_load_undeployed_smart_account(chain_reader, progress_log):
    chain_reader.code = None

    state = await load_smart_account(chain_reader, SEPOLIA, progress_log)

    assert not state.is_deployed
    assert state.owners == []
    assert state.threshold == 1
    assert progress_log.events[-1].level == ProgressLevel.warn
    assert progress_log.events[-1].details == (
        f"Deploy it through factory {SEPOLIA.factory}")
    assert chain_reader.calls == ["get_code"]

    progress_log.clear()
    await load_smart_account(
        chain_reader, replace(SEPOLIA, factory=None), progress_log)
    assert progress_log.events[-1].details == (
        "No account factory configured for sepolia")


@pytest.mark.asyncio
async def test_load_smart_account_without_configured_address(
    chain_reader, progress_log
):
    with pytest.raises(ConfigurationException):
        await load_smart_account(
            chain_reader, NETWORKS["arbitrum_sepolia"], progress_log)
    assert chain_reader.calls == []
