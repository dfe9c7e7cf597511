from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from solana.exceptions import SolanaRpcException
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from chain_errors import NetworkError, SigningError, TransactionError
from conftest import FakeSolanaClient
from tx_builder import build_create_tree_account_ix, build_create_tree_config_ix
from tx_sender import send_transaction, wait_for_confirmation


def _tree_instructions(payer: Keypair, tree: Keypair):
    return [
        build_create_tree_account_ix(payer.pubkey(), tree.pubkey(), space=100, lamports=1),
        build_create_tree_config_ix(payer.pubkey(), tree.pubkey(), payer.pubkey(), 14, 64, False),
    ]


def test_send_transaction_signs_payer_first(payer, fake_client):
    tree = Keypair()
    signature = send_transaction(fake_client, _tree_instructions(payer, tree), payer, [tree])
    assert signature == fake_client.signature
    assert fake_client.blockhash_calls == 1
    assert len(fake_client.sent) == 1
    tx = VersionedTransaction.from_bytes(fake_client.sent[0])
    keys = tx.message.account_keys
    assert keys[0] == payer.pubkey()
    assert tx.message.header.num_required_signatures == 2
    assert len(tx.signatures) == 2
    assert Signature.default() not in tx.signatures


def test_send_transaction_blockhash_failure_sends_nothing(payer):
    client = FakeSolanaClient(blockhash_error=SolanaRpcException("connection refused"))
    with pytest.raises(NetworkError) as info:
        send_transaction(client, _tree_instructions(payer, Keypair()), payer, [])
    assert info.value.message.startswith("Solana client error: ")
    assert client.sent == []


def test_send_transaction_missing_signer(payer, fake_client):
    with pytest.raises(SigningError):
        send_transaction(fake_client, _tree_instructions(payer, Keypair()), payer, [])
    assert fake_client.sent == []


def test_send_transaction_extra_signer_rejected(payer, fake_client):
    ix = build_create_tree_config_ix(payer.pubkey(), Pubkey.new_unique(), payer.pubkey(), 14, 64, False)
    with pytest.raises(SigningError):
        send_transaction(fake_client, [ix], payer, [Keypair()])


def test_send_transaction_node_rejection(payer):
    client = FakeSolanaClient(send_error=RuntimeError("Transaction simulation failed: insufficient funds"))
    tree = Keypair()
    with pytest.raises(TransactionError) as info:
        send_transaction(client, _tree_instructions(payer, tree), payer, [tree])
    assert "insufficient funds" in info.value.message


def test_send_transaction_transport_failure(payer):
    client = FakeSolanaClient(send_error=SolanaRpcException("read timeout"))
    tree = Keypair()
    with pytest.raises(NetworkError):
        send_transaction(client, _tree_instructions(payer, tree), payer, [tree])


def test_send_transaction_failed_on_chain(payer):
    client = FakeSolanaClient(status_err="InstructionError(1, Custom(6000))")
    tree = Keypair()
    with pytest.raises(TransactionError, match="Custom"):
        send_transaction(client, _tree_instructions(payer, tree), payer, [tree])
    assert len(client.sent) == 1


def test_wait_for_confirmation_times_out():
    client = MagicMock()
    client.get_signature_statuses.return_value = SimpleNamespace(value=[None])
    with pytest.raises(TransactionError, match="not confirmed"):
        wait_for_confirmation(client, "sig", timeout_sec=0, poll_seconds=0)
    client.get_signature_statuses.assert_called_once()


def test_wait_for_confirmation_keeps_polling_while_processed():
    client = MagicMock()
    client.get_signature_statuses.side_effect = [
        SimpleNamespace(value=[SimpleNamespace(err=None, confirmation_status=TransactionConfirmationStatus.Processed)]),
        SimpleNamespace(value=[None]),
        SimpleNamespace(value=[SimpleNamespace(err=None, confirmation_status=TransactionConfirmationStatus.Confirmed)]),
    ]
    wait_for_confirmation(client, "sig", timeout_sec=5, poll_seconds=0)
    assert client.get_signature_statuses.call_count == 3


def test_wait_for_confirmation_accepts_finalized():
    client = MagicMock()
    client.get_signature_statuses.return_value = SimpleNamespace(
        value=[SimpleNamespace(err=None, confirmation_status=TransactionConfirmationStatus.Finalized)]
    )
    wait_for_confirmation(client, "sig", timeout_sec=5, poll_seconds=0)
    client.get_signature_statuses.assert_called_once()


def test_wait_for_confirmation_processed_only_times_out():
    client = MagicMock()
    client.get_signature_statuses.return_value = SimpleNamespace(
        value=[SimpleNamespace(err=None, confirmation_status=TransactionConfirmationStatus.Processed)]
    )
    with pytest.raises(TransactionError, match="not confirmed"):
        wait_for_confirmation(client, "sig", timeout_sec=0, poll_seconds=0)
