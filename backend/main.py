from __future__ import annotations

import json
import logging
import os
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings
from solana.rpc.api import Client as SolanaClient
from solders.keypair import Keypair as SoldersKeypair

import bubblegum
from chain_errors import INPUT_ERROR_KINDS, NetworkError, TransactionError
from chain_keys import keypair_to_b58
from cnft_metadata import MAX_TREE_DEPTH, MetadataInput
from leaf_indexer import DasLeafIndexer
from tx_sender import connect


class Settings(BaseSettings):
    solana_rpc: str = bubblegum.DEFAULT_RPC_URL
    helius_rpc_url: str = ""
    das_rpc_url: str = ""
    rpc_timeout_seconds: float = 30
    payer_keypair_path: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


auth_settings = Settings()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("bubblegum.api")

# Prefer Helius RPC if provided to improve reliability.
rpc_url = auth_settings.helius_rpc_url or auth_settings.solana_rpc
PAYER_KEYPAIR: Optional[SoldersKeypair] = None

UPSTREAM_ERROR_KINDS = {NetworkError.kind, TransactionError.kind}


def rpc_client_factory(url: str) -> SolanaClient:
    return connect(url, timeout=auth_settings.rpc_timeout_seconds)


def leaf_indexer_for(url: str) -> DasLeafIndexer:
    return DasLeafIndexer(auth_settings.das_rpc_url or url, timeout=auth_settings.rpc_timeout_seconds)


def load_payer_keypair() -> SoldersKeypair:
    global PAYER_KEYPAIR
    if PAYER_KEYPAIR:
        return PAYER_KEYPAIR
    if not auth_settings.payer_keypair_path:
        raise HTTPException(status_code=400, detail="payer_keypair_bs58 missing and PAYER_KEYPAIR_PATH not configured")
    path = auth_settings.payer_keypair_path
    if not os.path.exists(path):
        raise HTTPException(status_code=500, detail=f"Payer keypair file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=500, detail=f"Failed to read payer keypair: {exc}") from exc
    secret_bytes: bytes
    if isinstance(data, list):
        secret_bytes = bytes(data)
    elif isinstance(data, dict) and "secretKey" in data:
        secret_bytes = bytes(data["secretKey"])
    else:
        raise HTTPException(status_code=500, detail="Unsupported payer keypair format")
    try:
        PAYER_KEYPAIR = SoldersKeypair.from_bytes(secret_bytes)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=500, detail=f"Failed to parse payer keypair: {exc}") from exc
    logger.info("payer_keypair_loaded pubkey=%s path=%s", PAYER_KEYPAIR.pubkey(), path)
    return PAYER_KEYPAIR


def resolve_payer(payer_keypair_bs58: Optional[str]) -> str:
    if payer_keypair_bs58:
        return payer_keypair_bs58
    return keypair_to_b58(load_payer_keypair())


def respond(result: bubblegum.OperationResult) -> Dict[str, str]:
    if isinstance(result, bubblegum.Success):
        return dict(result.payload)
    if result.kind in INPUT_ERROR_KINDS:
        status = 400
    elif result.kind in UPSTREAM_ERROR_KINDS:
        status = 502
    else:
        status = 500
    raise HTTPException(status_code=status, detail=result.message)


class CreateTreeRequest(BaseModel):
    payer_keypair_bs58: Optional[str] = None
    max_depth: int = Field(ge=1, le=MAX_TREE_DEPTH)
    max_buffer_size: int = Field(ge=1)
    canopy_depth: int = Field(default=0, ge=0, le=MAX_TREE_DEPTH)
    public: bool = False
    rpc_url: Optional[str] = None


class CreatorModel(BaseModel):
    address: str
    verified: bool = False
    share: int = Field(default=0, ge=0, le=255)


class MetadataModel(BaseModel):
    name: str
    symbol: str = ""
    uri: str
    seller_fee_basis_points: int = Field(default=0, ge=0, le=65535)
    primary_sale_happened: bool = False
    is_mutable: bool = True
    edition_nonce: Optional[int] = Field(default=None, ge=0, le=255)
    creators: List[CreatorModel] = []
    collection: Optional[str] = None
    uses: Optional[int] = Field(default=None, ge=0, le=2**64 - 1)

    def to_input(self) -> MetadataInput:
        return MetadataInput.from_dict(self.model_dump())


class MintRequest(BaseModel):
    payer_keypair_bs58: Optional[str] = None
    tree_pubkey: str
    collection_pubkey: str
    metadata: MetadataModel
    leaf_owner: Optional[str] = None
    rpc_url: Optional[str] = None


class TransferRequest(BaseModel):
    payer_keypair_bs58: Optional[str] = None
    tree_pubkey: str
    leaf_owner: str
    new_owner: str
    asset_id: str
    canopy_depth: int = Field(default=0, ge=0, le=MAX_TREE_DEPTH)
    rpc_url: Optional[str] = None


app = FastAPI(title="Bubblegum cNFT API", version="0.1.0")


@app.get("/health")
def health():
    return {"status": "ok", "rpc_url": rpc_url}


# Plain `def` handlers: FastAPI runs them on its worker threadpool, so a slow
# RPC node never blocks the event loop.
@app.post("/bubblegum/tree")
def create_tree(req: CreateTreeRequest):
    url = req.rpc_url or rpc_url
    result = bubblegum.create_tree_config(
        resolve_payer(req.payer_keypair_bs58),
        req.max_depth,
        req.max_buffer_size,
        req.canopy_depth,
        req.public,
        rpc_url=url,
        client_factory=rpc_client_factory,
    )
    return respond(result)


@app.post("/bubblegum/mint")
def mint(req: MintRequest):
    url = req.rpc_url or rpc_url
    result = bubblegum.mint_to_collection_v1(
        resolve_payer(req.payer_keypair_bs58),
        req.tree_pubkey,
        req.collection_pubkey,
        req.metadata.to_input(),
        rpc_url=url,
        leaf_owner=req.leaf_owner,
        client_factory=rpc_client_factory,
    )
    return respond(result)


@app.post("/bubblegum/transfer")
def transfer(req: TransferRequest):
    url = req.rpc_url or rpc_url
    result = bubblegum.transfer(
        resolve_payer(req.payer_keypair_bs58),
        req.tree_pubkey,
        req.leaf_owner,
        req.new_owner,
        req.asset_id,
        rpc_url=url,
        indexer=leaf_indexer_for(url),
        canopy_depth=req.canopy_depth,
        client_factory=rpc_client_factory,
    )
    return respond(result)
