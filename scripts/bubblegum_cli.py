#!/usr/bin/env python3
"""
Command-line front end for the Bubblegum operations.

  python scripts/bubblegum_cli.py create-tree --keypair payer.json --max-depth 14 --max-buffer-size 64
  python scripts/bubblegum_cli.py mint --keypair payer.json --tree <TREE> --collection <MINT> --metadata nft.json
  python scripts/bubblegum_cli.py transfer --keypair payer.json --tree <TREE> --owner <OWNER> --new-owner <NEW> --asset-id <ASSET>

--keypair accepts a JSON keypair file (byte array or {"secretKey": [...]}) or a
base58 secret key. RPC defaults to SOLANA_RPC / HELIUS_RPC_URL from .env.
Prints {"ok": {...}} or {"error": "..."}; exits 1 on failure.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

sys.path.append(str(Path(__file__).resolve().parents[1] / "backend"))
import bubblegum  # noqa: E402
from chain_errors import SerializationError  # noqa: E402
from chain_keys import keypair_to_b58  # noqa: E402
from cnft_metadata import MetadataInput  # noqa: E402
from main import leaf_indexer_for, rpc_client_factory, rpc_url  # noqa: E402
from solders.keypair import Keypair  # noqa: E402


def load_keypair_arg(value: str) -> str:
    path = Path(value)
    if not path.exists():
        return value
    raw = json.loads(path.read_text())
    if isinstance(raw, dict) and "secretKey" in raw:
        raw = raw["secretKey"]
    if not isinstance(raw, list):
        raise ValueError(f"Unsupported keypair file format: {path}")
    return keypair_to_b58(Keypair.from_bytes(bytes(raw)))


def load_metadata(path: str) -> MetadataInput:
    with open(path, "r", encoding="utf-8") as fh:
        return MetadataInput.from_dict(json.load(fh))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compressed NFT operations via Metaplex Bubblegum")
    parser.add_argument("--rpc-url", default=None, help="Solana RPC endpoint (default from settings)")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-tree", help="Create a new Merkle tree and its Bubblegum config")
    create.add_argument("--keypair", required=True)
    create.add_argument("--max-depth", type=int, required=True)
    create.add_argument("--max-buffer-size", type=int, required=True)
    create.add_argument("--canopy-depth", type=int, default=0)
    create.add_argument("--public", action="store_true")

    mint = sub.add_parser("mint", help="Mint a compressed NFT into a collection")
    mint.add_argument("--keypair", required=True)
    mint.add_argument("--tree", required=True)
    mint.add_argument("--collection", required=True)
    mint.add_argument("--metadata", required=True, help="Path to a metadata JSON file")
    mint.add_argument("--leaf-owner", default=None)

    transfer = sub.add_parser("transfer", help="Transfer a compressed NFT to a new owner")
    transfer.add_argument("--keypair", required=True)
    transfer.add_argument("--tree", required=True)
    transfer.add_argument("--owner", required=True)
    transfer.add_argument("--new-owner", required=True)
    transfer.add_argument("--asset-id", required=True)
    transfer.add_argument("--canopy-depth", type=int, default=0)
    return parser


def run(args: argparse.Namespace) -> bubblegum.OperationResult:
    url = args.rpc_url or rpc_url
    payer = load_keypair_arg(args.keypair)
    if args.command == "create-tree":
        return bubblegum.create_tree_config(
            payer,
            args.max_depth,
            args.max_buffer_size,
            args.canopy_depth,
            args.public,
            rpc_url=url,
            client_factory=rpc_client_factory,
        )
    if args.command == "mint":
        return bubblegum.mint_to_collection_v1(
            payer,
            args.tree,
            args.collection,
            load_metadata(args.metadata),
            rpc_url=url,
            leaf_owner=args.leaf_owner,
            client_factory=rpc_client_factory,
        )
    return bubblegum.transfer(
        payer,
        args.tree,
        args.owner,
        args.new_owner,
        args.asset_id,
        rpc_url=url,
        indexer=leaf_indexer_for(url),
        canopy_depth=args.canopy_depth,
        client_factory=rpc_client_factory,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        result = run(args)
    except (ValueError, KeyError, TypeError, OSError) as exc:
        # Unreadable keypair or metadata files never reach the pipeline.
        result = bubblegum.Failure.from_error(SerializationError(exc))
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
