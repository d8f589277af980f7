from dataclasses import dataclass

from aa_wallet.client.exceptions import ConfigurationException
from aa_wallet.typing import Address

ENTRYPOINT_V07 = Address("0x0000000071727De22E5E9d8BAf0edAc6f37da032")


@dataclass(frozen=True)
class NetworkAddresses:
    name: str
    chain_id: int
    entrypoint: Address
    factory: Address | None
    paymaster: Address | None
    nft: Address | None
    smart_account: Address | None
    default_node_url: str
    explorer_url: str

    def require(self, field_name: str) -> Address:
        value = getattr(self, field_name)
        if value is None:
            raise ConfigurationException(
                f"{field_name} address is not configured for network {self.name}"
            )
        return value

    def transaction_url(self, transaction_hash: str) -> str:
        return f"{self.explorer_url}/tx/{transaction_hash}"

    def address_url(self, address: str) -> str:
        return f"{self.explorer_url}/address/{address}"


NETWORKS: dict[str, NetworkAddresses] = {
    "sepolia": NetworkAddresses(
        name="sepolia",
        chain_id=11155111,
        entrypoint=ENTRYPOINT_V07,
        factory=Address("0x26fC0Bf3D80663A8Bbbe51faAa341b2762C81195"),
        paymaster=Address("0x18bF042488F4e36Cc65993715F7a14097740BE4F"),
        nft=Address("0x90B54B4C9B926ACD2F8461196c3371Db920800b2"),
        smart_account=Address("0x3D18509a0EaB0F97721D63D29753F39BbF8f1ABd"),
        default_node_url="https://sepolia.drpc.org",
        explorer_url="https://sepolia.etherscan.io",
    ),
    # contracts are not deployed on arbitrum sepolia yet
    "arbitrum_sepolia": NetworkAddresses(
        name="arbitrum_sepolia",
        chain_id=421614,
        entrypoint=ENTRYPOINT_V07,
        factory=None,
        paymaster=None,
        nft=None,
        smart_account=None,
        default_node_url="https://sepolia-rollup.arbitrum.io/rpc",
        explorer_url="https://sepolia.arbiscan.io",
    ),
}

DEFAULT_NETWORK = "sepolia"


def get_network_addresses(network: str = DEFAULT_NETWORK) -> NetworkAddresses:
    if network not in NETWORKS:
        raise ConfigurationException(
            f"Unknown network {network}, expected one of {', '.join(NETWORKS)}"
        )
    return NETWORKS[network]


def get_pimlico_bundler_url(chain_id: int, api_key: str) -> str:
    return f"https://api.pimlico.io/v2/{chain_id}/rpc?apikey={api_key}"
