"""
Resolves a compressed asset to the leaf it occupies in its Merkle tree.

Bubblegum's transfer instruction must name the exact leaf it replaces: the
current root, the leaf's data and creator hashes, its nonce/index and the
proof path. None of that is derivable locally, so it is read from a Digital
Asset Standard (DAS) indexer via the getAsset and getAssetProof JSON-RPC
methods that Helius and other RPC providers expose.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import base58
import requests
from solders.pubkey import Pubkey

from chain_errors import NetworkError, SerializationError

logger = logging.getLogger("bubblegum.indexer")


@dataclass(frozen=True)
class LeafProof:
    asset_id: Pubkey
    tree: Pubkey
    root: bytes
    data_hash: bytes
    creator_hash: bytes
    nonce: int
    index: int
    proof: List[Pubkey]
    owner: Optional[Pubkey] = None
    delegate: Optional[Pubkey] = None


def _hash32(value: Any, field: str) -> bytes:
    try:
        raw = base58.b58decode(str(value).strip())
    except Exception as exc:  # noqa: BLE001
        raise SerializationError(f"{field} is not base58: {exc}") from exc
    if len(raw) != 32:
        raise SerializationError(f"{field} must be 32 bytes, got {len(raw)}")
    return raw


def _pubkey(value: Any, field: str) -> Pubkey:
    return Pubkey.from_bytes(_hash32(value, field))


class DasLeafIndexer:
    def __init__(self, url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _call(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        body = {"jsonrpc": "2.0", "id": "bubblegum", "method": method, "params": params}
        try:
            resp = self.session.post(self.url, json=body, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            raise NetworkError(f"{method} failed: {exc}") from exc
        except ValueError as exc:
            raise SerializationError(f"{method} returned invalid JSON: {exc}") from exc
        if payload.get("error"):
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise SerializationError(f"{method} error: {message}")
        result = payload.get("result")
        if not isinstance(result, dict):
            raise SerializationError(f"{method} returned no result")
        return result

    def resolve_leaf(self, asset_id: Pubkey) -> LeafProof:
        asset = self._call("getAsset", {"id": str(asset_id)})
        proof = self._call("getAssetProof", {"id": str(asset_id)})
        compression = asset.get("compression") or {}
        if not compression.get("compressed", True):
            raise SerializationError(f"asset {asset_id} is not compressed")
        ownership = asset.get("ownership") or {}
        try:
            leaf_id = int(compression["leaf_id"])
            tree = _pubkey(compression.get("tree") or proof["tree_id"], "tree")
            nodes = [_pubkey(node, "proof") for node in proof["proof"]]
            root = _hash32(proof["root"], "root")
            data_hash = _hash32(compression["data_hash"], "data_hash")
            creator_hash = _hash32(compression["creator_hash"], "creator_hash")
            # Leaf nodes are numbered from 2**depth; the full proof has depth nodes.
            index = int(proof["node_index"]) - (1 << len(nodes)) if proof.get("node_index") is not None else leaf_id
        except (KeyError, TypeError, ValueError) as exc:
            raise SerializationError(f"incomplete asset proof for {asset_id}: {exc}") from exc
        owner = _pubkey(ownership["owner"], "owner") if ownership.get("owner") else None
        delegate = _pubkey(ownership["delegate"], "delegate") if ownership.get("delegate") else None
        logger.info(
            "leaf_resolved asset=%s tree=%s leaf_id=%s index=%s proof_len=%s", asset_id, tree, leaf_id, index, len(nodes)
        )
        return LeafProof(
            asset_id=asset_id,
            tree=tree,
            root=root,
            data_hash=data_hash,
            creator_hash=creator_hash,
            nonce=leaf_id,
            index=index,
            proof=nodes,
            owner=owner,
            delegate=delegate,
        )
