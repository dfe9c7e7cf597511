"""
Pytest fixtures for the Bubblegum pipeline. The Solana RPC client and the DAS
indexer are replaced by in-memory fakes, so no test touches the network.
"""

from __future__ import annotations

from types import SimpleNamespace
from typing import List

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from chain_keys import keypair_to_b58
from leaf_indexer import LeafProof

VALID_WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
VALID_WALLET_2 = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"


class FakeSolanaClient:
    """Records calls and answers like a healthy node."""

    def __init__(self, status_err=None, send_error: Exception = None, blockhash_error: Exception = None):
        self.blockhash_calls = 0
        self.sent: List[bytes] = []
        self.status_calls = 0
        self.status_err = status_err
        self.send_error = send_error
        self.blockhash_error = blockhash_error
        self.signature = Signature.new_unique()

    def get_latest_blockhash(self, commitment=None):
        self.blockhash_calls += 1
        if self.blockhash_error:
            raise self.blockhash_error
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.new_unique(), last_valid_block_height=1000))

    def send_raw_transaction(self, txn: bytes, opts=None):
        if self.send_error:
            raise self.send_error
        self.sent.append(txn)
        return SimpleNamespace(value=self.signature)

    def get_signature_statuses(self, signatures):
        self.status_calls += 1
        status = SimpleNamespace(err=self.status_err, confirmation_status=TransactionConfirmationStatus.Confirmed)
        return SimpleNamespace(value=[status])


class FakeIndexer:
    def __init__(self, leaf: LeafProof):
        self.leaf = leaf
        self.calls: List[Pubkey] = []

    def resolve_leaf(self, asset_id: Pubkey) -> LeafProof:
        self.calls.append(asset_id)
        return self.leaf


def make_leaf(tree: Pubkey, index: int = 7, depth: int = 3, owner: Pubkey = None) -> LeafProof:
    return LeafProof(
        asset_id=Pubkey.new_unique(),
        tree=tree,
        root=bytes([1]) * 32,
        data_hash=bytes([2]) * 32,
        creator_hash=bytes([3]) * 32,
        nonce=index,
        index=index,
        proof=[Pubkey.new_unique() for _ in range(depth)],
        owner=owner,
    )


@pytest.fixture
def payer() -> Keypair:
    return Keypair()


@pytest.fixture
def payer_b58(payer) -> str:
    return keypair_to_b58(payer)


@pytest.fixture
def fake_client() -> FakeSolanaClient:
    return FakeSolanaClient()


@pytest.fixture
def client_factory(fake_client):
    urls: List[str] = []

    def factory(url: str) -> FakeSolanaClient:
        urls.append(url)
        return fake_client

    factory.urls = urls
    return factory
