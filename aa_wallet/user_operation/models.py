from dataclasses import dataclass

from aa_wallet.typing import Address, TransactionHash, UserOperationHash


@dataclass
class SessionKeyStatus:
    expires_at: int
    one_time: bool
    used: bool

    @property
    def is_registered(self) -> bool:
        return self.expires_at != 0

    def is_usable(self, now: int) -> bool:
        return (
            self.is_registered and
            self.expires_at > now and
            not (self.one_time and self.used)
        )


@dataclass
class SmartAccountState:
    address: Address
    balance: int
    owners: list[Address]
    threshold: int
    is_deployed: bool


@dataclass
class ReceiptInfo:
    transactionHash: TransactionHash
    blockHash: str | None
    blockNumber: str | None
    status: str | None
    gasUsed: str | None


@dataclass
class UserOperationReceiptInfo:
    userOpHash: UserOperationHash
    sender: Address | None
    success: bool | None
    actualGasCost: str | None
    actualGasUsed: str | None
    receipt: ReceiptInfo

    @classmethod
    def from_rpc_result(cls, result: dict) -> "UserOperationReceiptInfo":
        receipt = result["receipt"]
        return cls(
            userOpHash=UserOperationHash(result.get("userOpHash", "")),
            sender=result.get("sender"),
            success=result.get("success"),
            actualGasCost=result.get("actualGasCost"),
            actualGasUsed=result.get("actualGasUsed"),
            receipt=ReceiptInfo(
                transactionHash=TransactionHash(receipt["transactionHash"]),
                blockHash=receipt.get("blockHash"),
                blockNumber=receipt.get("blockNumber"),
                status=receipt.get("status"),
                gasUsed=receipt.get("gasUsed"),
            ),
        )
