from dataclasses import dataclass
from enum import IntEnum

from eth_abi import decode, encode
from eth_utils import to_checksum_address

from aa_wallet.typing import Address


class SignatureMode(IntEnum):
    # must match the account contract
    OWNERS = 0
    SESSION = 1


@dataclass(frozen=True)
class OwnersSignature:
    signers: tuple[Address, ...]
    signatures: tuple[bytes, ...]

    def __post_init__(self):
        if len(self.signers) != len(self.signatures):
            raise ValueError(
                f"{len(self.signers)} signers for "
                f"{len(self.signatures)} signatures"
            )

    @property
    def mode(self) -> SignatureMode:
        return SignatureMode.OWNERS


@dataclass(frozen=True)
class SessionSignature:
    session_key: Address
    signature: bytes

    @property
    def mode(self) -> SignatureMode:
        return SignatureMode.SESSION


SignatureEnvelope = OwnersSignature | SessionSignature


def encode_signature_envelope(envelope: SignatureEnvelope) -> bytes:
    """abi.encode(uint8 mode, bytes payload)"""
    if isinstance(envelope, OwnersSignature):
        payload = encode(
            ["address[]", "bytes[]"],
            [
                [to_checksum_address(signer) for signer in envelope.signers],
                list(envelope.signatures),
            ],
        )
    else:
        payload = encode(
            ["address", "bytes"],
            [to_checksum_address(envelope.session_key), envelope.signature],
        )
    return encode(["uint8", "bytes"], [int(envelope.mode), payload])


def decode_signature_envelope(encoded: bytes) -> SignatureEnvelope:
    mode, payload = decode(["uint8", "bytes"], encoded)
    if mode == SignatureMode.OWNERS:
        signers, signatures = decode(["address[]", "bytes[]"], payload)
        return OwnersSignature(
            signers=tuple(
                Address(to_checksum_address(signer)) for signer in signers),
            signatures=tuple(signatures),
        )
    elif mode == SignatureMode.SESSION:
        session_key, signature = decode(["address", "bytes"], payload)
        return SessionSignature(
            session_key=Address(to_checksum_address(session_key)),
            signature=signature,
        )
    raise ValueError(f"Unknown signature mode {mode}")
