import logging
import sys

import aiohttp
import uvloop

from aa_wallet.bundler.bundler_client import BundlerClient
from aa_wallet.chain.chain_reader import JsonRpcChainReader
from aa_wallet.chain.wallet import LocalAccountWallet, connect_wallet
from aa_wallet.client.exceptions import AAWalletException, ChainReadException
from aa_wallet.flows.progress import LoggingProgressReporter
from aa_wallet.flows.smart_account import load_smart_account
from aa_wallet.flows.user_operation_flows import SmartAccountFlows
from aa_wallet.signature.session_key import (
    generate_session_key, session_key_from_private_key)
from aa_wallet.utils.format import format_eth

from .cli_manager import InitData, parse_args


async def check_valid_ethereum_rpc_and_chain_id(
    chain_reader: JsonRpcChainReader, init_data: InitData
) -> None:
    try:
        chain_id = await chain_reader.get_chain_id()
    except ChainReadException as excp:
        logging.critical(
            f"Error when connecting to Eth node: {excp.message}")
        sys.exit(1)
    if chain_id != init_data.addresses.chain_id:
        logging.critical(
            f"Invalid chain id {chain_id} of Eth node, "
            f"expected {init_data.addresses.chain_id} "
            f"for {init_data.addresses.name}"
        )
        sys.exit(1)


async def execute_command(init_data: InitData) -> None:
    addresses = init_data.addresses
    reporter = LoggingProgressReporter()
    chain_reader = JsonRpcChainReader(
        init_data.ethereum_node_url, addresses.entrypoint)
    await check_valid_ethereum_rpc_and_chain_id(chain_reader, init_data)

    if init_data.command == "account":
        state = await load_smart_account(chain_reader, addresses, reporter)
        print(f"address: {state.address}")
        print(f"explorer: {addresses.address_url(state.address)}")
        print(f"deployed: {state.is_deployed}")
        if not state.is_deployed and addresses.factory is not None:
            print(f"factory: {addresses.factory}")
        print(f"balance: {format_eth(state.balance)} ETH")
        print(f"owners: {', '.join(state.owners)}")
        print(f"threshold: {state.threshold}")
        return

    wallet = None
    owner = None
    if init_data.owner_pk is not None:
        wallet = LocalAccountWallet([init_data.owner_pk], addresses.chain_id)
        owner = await connect_wallet(wallet, addresses.chain_id, reporter)

    bundler_client = BundlerClient(
        init_data.bundler_url,
        addresses.entrypoint,
        init_data.poll_interval,
        init_data.max_poll_attempts,
    )
    flows = SmartAccountFlows(
        chain_reader,
        bundler_client,
        addresses,
        reporter,
        wallet,
        init_data.gas_config,
        init_data.use_paymaster,
    )

    if init_data.command == "mint":
        transaction_hash = await flows.mint_nft_single_owner(
            owner, init_data.token_id)
    elif init_data.command == "mint-multisig":
        transaction_hash = await flows.mint_nft_multi_sig(
            owner, init_data.token_id, init_data.second_owner_pk)
    elif init_data.command == "register-session-key":
        session_key = generate_session_key(
            init_data.expires_in_minutes, init_data.one_time)
        transaction_hash = await flows.set_session_key_on_chain(
            owner, session_key)
        # the key is never stored, it is handed to the caller once
        print(f"session key address: {session_key.address}")
        print(f"session key secret: {session_key.private_key}")
        print(f"session key expires at: {session_key.expires_at}")
    elif init_data.command == "mint-session-key":
        session_key = session_key_from_private_key(
            init_data.session_key_pk,
            init_data.session_key_expires_at,
            init_data.one_time,
        )
        transaction_hash = await flows.mint_nft_with_session_key(
            session_key, init_data.token_id)
    elif init_data.command == "revoke-session-key":
        transaction_hash = await flows.revoke_session_key_on_chain(
            owner, init_data.session_key_address)
    elif init_data.command == "session-key-status":
        status = await flows.check_session_key_status(
            init_data.session_key_address)
        print(f"expires at: {status.expires_at}")
        print(f"one time: {status.one_time}")
        print(f"used: {status.used}")
        return
    else:
        raise ValueError(f"Unknown command {init_data.command}")

    print(f"transaction: {addresses.transaction_url(transaction_hash)}")


async def main(cmd_args=sys.argv[1:]) -> None:
    init_data = parse_args(cmd_args)
    logging.info(f"Running {init_data.command} on {init_data.addresses.name}")
    try:
        await execute_command(init_data)
    except AAWalletException as excp:
        logging.critical(f"{init_data.command} failed: {excp.message}")
        sys.exit(1)
    except aiohttp.ClientError as excp:
        logging.critical(f"{init_data.command} failed: {excp}")
        sys.exit(1)


def run() -> None:
    uvloop.run(main())
