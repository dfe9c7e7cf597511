"""
Domain-level metadata for compressed NFTs and its translation into the
MetadataArgs structure carried by Bubblegum's mint instructions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from solders.pubkey import Pubkey

from chain_errors import SerializationError
from chain_keys import parse_address

MAX_TREE_DEPTH = 30

USE_METHOD_MULTIPLE = "Multiple"
TOKEN_PROGRAM_VERSION_ORIGINAL = "Original"
TOKEN_STANDARD_NON_FUNGIBLE = "NonFungible"


@dataclass(frozen=True)
class TreeConfig:
    max_depth: int
    max_buffer_size: int
    public: bool = False
    canopy_depth: int = 0

    def __post_init__(self):
        # Concurrent Merkle trees support depths up to 30; the canopy sits inside the tree.
        if not 0 < self.max_depth <= MAX_TREE_DEPTH:
            raise SerializationError(f"max_depth must be in 1..{MAX_TREE_DEPTH}, got {self.max_depth}")
        if self.max_buffer_size <= 0:
            raise SerializationError(f"max_buffer_size must be positive, got {self.max_buffer_size}")
        if not 0 <= self.canopy_depth <= self.max_depth:
            raise SerializationError(f"canopy_depth must be in 0..{self.max_depth}, got {self.canopy_depth}")


@dataclass
class CreatorInput:
    address: str
    verified: bool = False
    share: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "CreatorInput":
        return cls(
            address=data["address"],
            verified=bool(data.get("verified", False)),
            share=int(data.get("share", 0)),
        )


@dataclass
class MetadataInput:
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int = 0
    primary_sale_happened: bool = False
    is_mutable: bool = True
    edition_nonce: Optional[int] = None
    creators: List[CreatorInput] = field(default_factory=list)
    collection: Optional[str] = None
    uses: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "MetadataInput":
        return cls(
            name=data["name"],
            symbol=data.get("symbol", ""),
            uri=data["uri"],
            seller_fee_basis_points=int(data.get("seller_fee_basis_points", 0)),
            primary_sale_happened=bool(data.get("primary_sale_happened", False)),
            is_mutable=bool(data.get("is_mutable", True)),
            edition_nonce=data.get("edition_nonce"),
            creators=[CreatorInput.from_dict(c) for c in data.get("creators") or []],
            collection=data.get("collection"),
            uses=data.get("uses"),
        )


@dataclass(frozen=True)
class Creator:
    address: Pubkey
    verified: bool
    share: int


@dataclass(frozen=True)
class Collection:
    key: Pubkey
    verified: bool = False


@dataclass(frozen=True)
class Uses:
    use_method: str
    remaining: int
    total: int


@dataclass(frozen=True)
class MetadataArgs:
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    primary_sale_happened: bool
    is_mutable: bool
    edition_nonce: Optional[int]
    creators: List[Creator]
    collection: Optional[Collection]
    uses: Optional[Uses]
    token_program_version: str = TOKEN_PROGRAM_VERSION_ORIGINAL
    token_standard: Optional[str] = TOKEN_STANDARD_NON_FUNGIBLE


def translate_creator(creator: CreatorInput) -> Creator:
    return Creator(address=parse_address(creator.address), verified=creator.verified, share=creator.share)


def translate_collection(collection: Optional[str]) -> Optional[Collection]:
    if collection is None:
        return None
    # The receiving program verifies collection membership.
    return Collection(key=parse_address(collection), verified=False)


def translate_uses(count: Optional[int]) -> Optional[Uses]:
    if count is None:
        return None
    return Uses(use_method=USE_METHOD_MULTIPLE, remaining=count, total=count)


def translate_metadata(metadata: MetadataInput) -> MetadataArgs:
    """Build MetadataArgs from caller input.

    Raises InvalidAddress when a creator address or the collection key does
    not parse; nothing is partially translated.
    """
    creators = [translate_creator(c) for c in metadata.creators]
    return MetadataArgs(
        name=metadata.name,
        symbol=metadata.symbol,
        uri=metadata.uri,
        seller_fee_basis_points=metadata.seller_fee_basis_points,
        primary_sale_happened=metadata.primary_sale_happened,
        is_mutable=metadata.is_mutable,
        edition_nonce=metadata.edition_nonce,
        creators=creators,
        collection=translate_collection(metadata.collection),
        uses=translate_uses(metadata.uses),
    )
