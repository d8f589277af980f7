import logging

from aa_wallet.chain.chain_reader import ChainReader
from aa_wallet.client.exceptions import ChainReadException
from aa_wallet.config.networks import NetworkAddresses
from aa_wallet.user_operation.models import SmartAccountState
from aa_wallet.utils.format import format_eth, truncate_address
from .progress import ProgressReporter


async def load_smart_account(
    chain_reader: ChainReader,
    addresses: NetworkAddresses,
    reporter: ProgressReporter,
) -> SmartAccountState:
    smart_account = addresses.require("smart_account")
    reporter.info(
        f"Loading Smart Account: {truncate_address(smart_account)}",
        addresses.address_url(smart_account),
    )

    try:
        code = await chain_reader.get_code(smart_account)
        if code is not None:
            balance = await chain_reader.get_balance(smart_account)
            owners = await chain_reader.get_owners(smart_account)
            threshold = await chain_reader.get_threshold(smart_account)
    except ChainReadException as excp:
        reporter.error("Failed to load Smart Account", excp.message)
        raise

    if code is None:
        if addresses.factory is not None:
            details = f"Deploy it through factory {addresses.factory}"
        else:
            details = f"No account factory configured for {addresses.name}"
        reporter.warn("Smart Account not deployed yet", details)
        return SmartAccountState(
            address=smart_account,
            balance=0,
            owners=[],
            threshold=1,
            is_deployed=False,
        )

    logging.debug(f"Smart Account owners: {owners}, threshold: {threshold}")

    reporter.success(
        "Smart Account loaded",
        f"Balance: {format_eth(balance)} ETH, Owners: {len(owners)}, "
        f"Threshold: {threshold}",
    )
    return SmartAccountState(
        address=smart_account,
        balance=balance,
        owners=owners,
        threshold=threshold,
        is_deployed=True,
    )
