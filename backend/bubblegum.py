"""
Operation entry points for Metaplex Bubblegum compressed NFTs.

Each operation validates its inputs, builds one Bubblegum instruction, submits
it and returns an OperationResult. Every input is parsed before the first
network call, and the first failure ends the operation. Errors are returned
as Failure values, not raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Protocol, Union

from solana.rpc.api import Client
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from chain_errors import BubblegumError, InvalidAddress
from chain_keys import decode_keypair_b58, parse_address
from cnft_metadata import MetadataInput, TreeConfig, translate_metadata
from leaf_indexer import DasLeafIndexer, LeafProof
from tx_builder import (
    build_create_tree_account_ix,
    build_create_tree_config_ix,
    build_mint_to_collection_v1_ix,
    build_transfer_ix,
    merkle_tree_account_size,
    rent_exempt_lamports,
)
from tx_sender import connect, send_transaction

DEFAULT_RPC_URL = "https://api.devnet.solana.com"

logger = logging.getLogger("bubblegum")


@dataclass(frozen=True)
class Success:
    payload: Dict[str, str] = field(default_factory=dict)
    ok = True

    def to_dict(self) -> dict:
        return {"ok": dict(self.payload)}


@dataclass(frozen=True)
class Failure:
    kind: str
    message: str
    ok = False

    @classmethod
    def from_error(cls, error: BubblegumError) -> "Failure":
        return cls(kind=error.kind, message=error.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


OperationResult = Union[Success, Failure]


class LeafIndexer(Protocol):
    def resolve_leaf(self, asset_id: Pubkey) -> LeafProof:
        ...


ClientFactory = Callable[[str], Client]


def _run(operation: str, step: Callable[[], Dict[str, str]]) -> OperationResult:
    try:
        payload = step()
    except BubblegumError as exc:
        logger.warning("%s_failed kind=%s error=%s", operation, exc.kind, exc.message)
        return Failure.from_error(exc)
    logger.info("%s_ok %s", operation, " ".join(f"{k}={v}" for k, v in payload.items()))
    return Success(payload)


def create_tree_config(
    payer_keypair_bs58: str,
    max_depth: int,
    max_buffer_size: int,
    canopy_depth: int = 0,
    public: bool = False,
    rpc_url: str = DEFAULT_RPC_URL,
    client_factory: ClientFactory = connect,
) -> OperationResult:
    def step() -> Dict[str, str]:
        payer = decode_keypair_b58(payer_keypair_bs58)
        config = TreeConfig(
            max_depth=max_depth, max_buffer_size=max_buffer_size, public=public, canopy_depth=canopy_depth
        )
        # One-shot key for the tree account; it co-signs the allocation and is dropped.
        tree_keypair = Keypair()
        tree_pubkey = tree_keypair.pubkey()
        space = merkle_tree_account_size(config.max_depth, config.max_buffer_size, config.canopy_depth)
        instructions = [
            build_create_tree_account_ix(payer.pubkey(), tree_pubkey, space, rent_exempt_lamports(space)),
            build_create_tree_config_ix(
                payer=payer.pubkey(),
                merkle_tree=tree_pubkey,
                tree_creator=payer.pubkey(),
                max_depth=config.max_depth,
                max_buffer_size=config.max_buffer_size,
                public=config.public,
            ),
        ]
        client = client_factory(rpc_url)
        signature = send_transaction(client, instructions, payer, [tree_keypair])
        return {"tree_pubkey": str(tree_pubkey), "signature": str(signature)}

    return _run("create_tree", step)


def mint_to_collection_v1(
    payer_keypair_bs58: str,
    tree_pubkey: str,
    collection_pubkey: str,
    metadata: MetadataInput,
    rpc_url: str = DEFAULT_RPC_URL,
    leaf_owner: Optional[str] = None,
    client_factory: ClientFactory = connect,
) -> OperationResult:
    def step() -> Dict[str, str]:
        payer = decode_keypair_b58(payer_keypair_bs58)
        tree = parse_address(tree_pubkey)
        collection_mint = parse_address(collection_pubkey)
        owner = parse_address(leaf_owner) if leaf_owner else payer.pubkey()
        metadata_args = translate_metadata(metadata)
        ix = build_mint_to_collection_v1_ix(
            payer=payer.pubkey(),
            merkle_tree=tree,
            tree_creator_or_delegate=payer.pubkey(),
            collection_mint=collection_mint,
            collection_authority=payer.pubkey(),
            metadata=metadata_args,
            leaf_owner=owner,
        )
        client = client_factory(rpc_url)
        signature = send_transaction(client, [ix], payer)
        return {"signature": str(signature)}

    return _run("mint_to_collection", step)


def transfer(
    payer_keypair_bs58: str,
    tree_pubkey: str,
    leaf_owner: str,
    new_owner: str,
    asset_id: str,
    rpc_url: str = DEFAULT_RPC_URL,
    indexer: Optional[LeafIndexer] = None,
    canopy_depth: int = 0,
    client_factory: ClientFactory = connect,
) -> OperationResult:
    def step() -> Dict[str, str]:
        payer = decode_keypair_b58(payer_keypair_bs58)
        tree = parse_address(tree_pubkey)
        owner = parse_address(leaf_owner)
        recipient = parse_address(new_owner)
        asset = parse_address(asset_id)
        leaf = (indexer or DasLeafIndexer(rpc_url)).resolve_leaf(asset)
        if leaf.tree != tree:
            raise InvalidAddress(f"asset {asset} belongs to tree {leaf.tree}, not {tree}")
        if leaf.owner is not None and leaf.owner != owner:
            raise InvalidAddress(f"asset {asset} is owned by {leaf.owner}, not {owner}")
        ix = build_transfer_ix(
            merkle_tree=tree,
            leaf_owner=owner,
            new_leaf_owner=recipient,
            root=leaf.root,
            data_hash=leaf.data_hash,
            creator_hash=leaf.creator_hash,
            nonce=leaf.nonce,
            index=leaf.index,
            proof=leaf.proof,
            leaf_delegate=leaf.delegate,
            canopy_depth=canopy_depth,
        )
        client = client_factory(rpc_url)
        signature = send_transaction(client, [ix], payer)
        return {"signature": str(signature)}

    return _run("transfer", step)
