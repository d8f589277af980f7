import os
import logging
import re
import time
from argparse import ArgumentParser, Namespace, ArgumentTypeError
from dataclasses import dataclass

from aa_wallet.config.gas import DEFAULT_GAS_CONFIG, GasConfig
from aa_wallet.config.networks import (
    DEFAULT_NETWORK, NETWORKS, NetworkAddresses, get_network_addresses,
    get_pimlico_bundler_url)
from aa_wallet.utils.format import generate_token_id

from .typing import Address

COMMANDS = [
    "account",
    "mint",
    "mint-multisig",
    "register-session-key",
    "mint-session-key",
    "revoke-session-key",
    "session-key-status",
]


@dataclass()
class InitData:
    command: str
    addresses: NetworkAddresses
    ethereum_node_url: str
    bundler_url: str
    owner_pk: str | None
    second_owner_pk: str | None
    use_paymaster: bool
    poll_interval: float
    max_poll_attempts: int
    is_debug: bool
    gas_config: GasConfig
    token_id: int
    expires_in_minutes: int
    one_time: bool
    session_key_pk: str | None
    session_key_expires_at: int | None
    session_key_address: Address | None


def address(ep: str):
    address_pattern = "^0x[0-9,a-f,A-F]{40}$"
    if not isinstance(ep, str) or re.match(address_pattern, ep) is None:
        raise ArgumentTypeError(f"Wrong address format : {ep}")
    return ep


def private_key(pk: str):
    private_key_pattern = "^(0x)?[0-9a-fA-F]{64}$"
    if not isinstance(pk, str) or re.match(private_key_pattern, pk) is None:
        raise ArgumentTypeError("Wrong private key format")
    if not pk.startswith("0x"):
        pk = "0x" + pk
    return pk


def unsigned_int(value):
    ivalue = int(value)
    if ivalue < 0:
        raise ArgumentTypeError(
                "%s is an invalid unsigned int value" % value)
    return ivalue


def positive_float(value):
    fvalue = float(value)
    if fvalue < 0:
        raise ArgumentTypeError(
                "%s is an invalid positive number" % value)
    return fvalue


def _get_env_or_default(env_var, default, value_type):
    """
    Helper function to get the value from an environment variable or return the default value.
    argparse runs string defaults through the argument type, so pass str to
    have environment values validated like command line values.
    """
    value = os.getenv(env_var, None)
    if value is not None:
        return value_type(value)
    return default


def initialize_argument_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="aa-wallet",
        description="ERC-4337 v0.7 smart account client",
    )

    parser.add_argument(
        "command",
        choices=COMMANDS,
        help="operation to run against the smart account",
    )

    parser.add_argument(
        "--network",
        type=str,
        choices=list(NETWORKS),
        help=f"Network of the deployed contracts - defaults to {DEFAULT_NETWORK}",
        default=_get_env_or_default("AA_WALLET_NETWORK", DEFAULT_NETWORK, str),
    )

    parser.add_argument(
        "--ethereum_node_url",
        type=str,
        help="Ethereum node url - defaults to the network public rpc",
        nargs="?",
        default=_get_env_or_default("AA_WALLET_ETHEREUM_NODE_URL", None, str),
    )

    parser.add_argument(
        "--bundler_url",
        type=str,
        help="Bundler json-rpc url",
        nargs="?",
        default=_get_env_or_default("AA_WALLET_BUNDLER_URL", None, str),
    )

    parser.add_argument(
        "--pimlico_api_key",
        type=str,
        help="Pimlico api key, used to derive the bundler url",
        nargs="?",
        default=_get_env_or_default("AA_WALLET_PIMLICO_API_KEY", None, str),
    )

    parser.add_argument(
        "--owner_secret",
        type=private_key,
        help="Private key of an owner of the smart account",
        nargs="?",
        default=_get_env_or_default("AA_WALLET_OWNER_SECRET", None, str),
    )

    parser.add_argument(
        "--second_owner_secret",
        type=private_key,
        help="Private key of a second owner, for multi-sig",
        nargs="?",
        default=_get_env_or_default(
            "AA_WALLET_SECOND_OWNER_SECRET", None, str),
    )

    parser.add_argument(
        "--no_paymaster",
        help="Do not sponsor gas with the configured paymaster",
        action="store_true",
        default=False,
    )

    parser.add_argument(
        "--poll_interval",
        type=positive_float,
        help="Seconds between receipt polls - defaults to 2",
        nargs="?",
        const=2,
        default=_get_env_or_default("AA_WALLET_POLL_INTERVAL", 2, str),
    )

    parser.add_argument(
        "--poll_attempts",
        type=unsigned_int,
        help="Maximum number of receipt polls - defaults to 60",
        nargs="?",
        const=60,
        default=_get_env_or_default("AA_WALLET_POLL_ATTEMPTS", 60, str),
    )

    parser.add_argument(
        "--token_id",
        type=unsigned_int,
        help="Token id to mint - defaults to a random id",
        nargs="?",
        default=None,
    )

    parser.add_argument(
        "--expires_in_minutes",
        type=unsigned_int,
        help="Validity of a new session key - defaults to 5",
        nargs="?",
        const=5,
        default=5,
    )

    parser.add_argument(
        "--one_time",
        help="Register the session key for a single use",
        action="store_true",
        default=False,
    )

    parser.add_argument(
        "--session_key_secret",
        type=private_key,
        help="Private key of a registered session key",
        nargs="?",
        default=_get_env_or_default(
            "AA_WALLET_SESSION_KEY_SECRET", None, str),
    )

    parser.add_argument(
        "--session_key_expires_at",
        type=unsigned_int,
        help="Expiry (unix seconds) of the session key",
        nargs="?",
        default=None,
    )

    parser.add_argument(
        "--session_key_address",
        type=address,
        help="Address of a session key",
        nargs="?",
        default=None,
    )

    parser.add_argument(
        "--verbose",
        help="show debug log",
        action="store_true",
        default=False,
    )

    return parser


def parse_args(cmd_args: list[str]) -> InitData:
    argument_parser: ArgumentParser = initialize_argument_parser()
    args = argument_parser.parse_args(cmd_args)

    # defaults taken from the environment skip the choices check
    if args.network not in NETWORKS:
        argument_parser.error(f"Unknown network {args.network}")

    if args.bundler_url and args.pimlico_api_key:
        argument_parser.error(
            "You can only specify either --bundler_url or --pimlico_api_key "
            "but not both at the same time")

    needs_bundler = args.command not in ("account", "session-key-status")
    if needs_bundler and not args.bundler_url and not args.pimlico_api_key:
        argument_parser.error(
            "You must specify either --bundler_url or --pimlico_api_key, or set "
            "AA_WALLET_BUNDLER_URL or AA_WALLET_PIMLICO_API_KEY environment variables.")

    needs_owner = args.command in (
        "mint", "mint-multisig", "register-session-key", "revoke-session-key")
    if needs_owner and not args.owner_secret:
        argument_parser.error(
            f"{args.command} needs --owner_secret or AA_WALLET_OWNER_SECRET")
    if args.command == "mint-multisig" and not args.second_owner_secret:
        argument_parser.error(
            "mint-multisig needs --second_owner_secret or "
            "AA_WALLET_SECOND_OWNER_SECRET")
    if args.command == "mint-session-key" and (
        not args.session_key_secret or args.session_key_expires_at is None
    ):
        argument_parser.error(
            "mint-session-key needs --session_key_secret and "
            "--session_key_expires_at")
    if (
        args.command in ("revoke-session-key", "session-key-status") and
        not args.session_key_address
    ):
        argument_parser.error(f"{args.command} needs --session_key_address")

    return get_init_data(args)


def init_logging(is_debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if is_debug else logging.INFO,
        format="%(asctime)s.%(msecs)03d %(levelname)s %(message)s",
        datefmt="%b %d %H:%M:%S",
    )


def get_init_data(args: Namespace) -> InitData:
    init_logging(args.verbose)

    addresses = get_network_addresses(args.network)

    if args.ethereum_node_url is None:
        args.ethereum_node_url = addresses.default_node_url

    if args.bundler_url is not None:
        bundler_url = args.bundler_url
    elif args.pimlico_api_key is not None:
        bundler_url = get_pimlico_bundler_url(
            addresses.chain_id, args.pimlico_api_key)
    else:
        bundler_url = ""

    token_id = args.token_id
    if token_id is None:
        token_id = generate_token_id()

    if args.session_key_expires_at is not None and args.session_key_expires_at <= time.time():
        logging.warning(
            f"Session key expiry {args.session_key_expires_at} is in the past")

    return InitData(
        command=args.command,
        addresses=addresses,
        ethereum_node_url=args.ethereum_node_url,
        bundler_url=bundler_url,
        owner_pk=args.owner_secret,
        second_owner_pk=args.second_owner_secret,
        use_paymaster=not args.no_paymaster,
        poll_interval=args.poll_interval,
        max_poll_attempts=args.poll_attempts,
        is_debug=args.verbose,
        gas_config=DEFAULT_GAS_CONFIG,
        token_id=token_id,
        expires_in_minutes=args.expires_in_minutes,
        one_time=args.one_time,
        session_key_pk=args.session_key_secret,
        session_key_expires_at=args.session_key_expires_at,
        session_key_address=args.session_key_address,
    )
