import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from chain_errors import InvalidAddress, InvalidEncoding, InvalidKey

PUBKEY_LENGTH = 32
KEYPAIR_LENGTH = 64


def parse_address(value: str) -> Pubkey:
    try:
        raw = base58.b58decode(value)
    except Exception as exc:  # noqa: BLE001
        raise InvalidAddress(exc) from exc
    if len(raw) != PUBKEY_LENGTH:
        raise InvalidAddress(f"expected {PUBKEY_LENGTH} bytes, got {len(raw)}")
    return Pubkey.from_bytes(raw)


def parse_signing_key(raw: bytes) -> Keypair:
    if len(raw) != KEYPAIR_LENGTH:
        raise InvalidKey(f"expected {KEYPAIR_LENGTH} bytes, got {len(raw)}")
    try:
        return Keypair.from_bytes(raw)
    except Exception as exc:  # noqa: BLE001
        raise InvalidKey(exc) from exc


def decode_keypair_b58(value: str) -> Keypair:
    try:
        raw = base58.b58decode(value)
    except Exception as exc:  # noqa: BLE001
        raise InvalidEncoding(exc) from exc
    return parse_signing_key(raw)


def keypair_to_b58(keypair: Keypair) -> str:
    return base58.b58encode(bytes(keypair)).decode()
