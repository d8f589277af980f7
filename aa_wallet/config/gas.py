from dataclasses import dataclass


@dataclass(frozen=True)
class GasConfig:
    """
    Fixed gas limits and fees applied to every UserOperation.
    No estimation is performed, all values are process wide constants.
    """
    verification_gas_limit: int = 500_000
    call_gas_limit: int = 500_000
    pre_verification_gas: int = 100_000
    paymaster_verification_gas_limit: int = 100_000
    paymaster_post_op_gas_limit: int = 50_000
    max_fee_per_gas: int = 50_000_000_000  # 50 gwei
    max_priority_fee_per_gas: int = 2_000_000_000  # 2 gwei


DEFAULT_GAS_CONFIG = GasConfig()
