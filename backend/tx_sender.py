import logging
import time
from typing import List, Optional, Sequence

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from chain_errors import NetworkError, SigningError, TransactionError
from tx_builder import instruction_to_dict

logger = logging.getLogger("bubblegum.sender")

CONFIRM_TIMEOUT_SECONDS = 60
CONFIRM_POLL_SECONDS = 0.8
CONFIRMED_STATUSES = (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized)


def connect(rpc_url: str, timeout: Optional[float] = 30) -> Client:
    return Client(rpc_url, commitment=Confirmed, timeout=timeout)


def sign_transaction(message: MessageV0, payer: Keypair, signers: Sequence[Keypair]) -> VersionedTransaction:
    # Payer first; the remaining keys must cover every other required signer.
    keypairs: List[Keypair] = [payer]
    for signer in signers:
        if signer.pubkey() not in [k.pubkey() for k in keypairs]:
            keypairs.append(signer)
    try:
        return VersionedTransaction(message, keypairs)
    except Exception as exc:  # noqa: BLE001
        raise SigningError(exc) from exc


def wait_for_confirmation(
    client: Client,
    signature: Signature,
    timeout_sec: float = CONFIRM_TIMEOUT_SECONDS,
    poll_seconds: float = CONFIRM_POLL_SECONDS,
) -> None:
    start = time.time()
    while True:
        try:
            resp = client.get_signature_statuses([signature])
        except SolanaRpcException as exc:
            raise NetworkError(exc) from exc
        status = resp.value[0] if resp.value else None
        if status is not None:
            if status.err is not None:
                raise TransactionError(f"{signature} failed: {status.err}")
            if status.confirmation_status in CONFIRMED_STATUSES:
                return
        if time.time() - start >= timeout_sec:
            raise TransactionError(f"{signature} not confirmed after {timeout_sec}s")
        time.sleep(poll_seconds)


def send_transaction(
    client: Client,
    instructions: List[Instruction],
    payer: Keypair,
    signers: Sequence[Keypair] = (),
    confirm_timeout: float = CONFIRM_TIMEOUT_SECONDS,
) -> Signature:
    """
    Compile, sign and submit one transaction, blocking until it is confirmed.

    Raises NetworkError if the blockhash cannot be fetched (nothing is signed
    in that case), SigningError if the key set does not match the required
    signers, and TransactionError if the node rejects or never confirms it.
    Nothing is retried here; a retry must rebuild with a fresh blockhash.
    """
    try:
        latest = client.get_latest_blockhash(commitment=Confirmed).value
    except Exception as exc:  # noqa: BLE001
        logger.warning("blockhash_fetch_failed error=%s", exc, exc_info=True)
        raise NetworkError(exc) from exc

    logger.debug("tx_instructions %s", [instruction_to_dict(ix) for ix in instructions])
    message = MessageV0.try_compile(payer.pubkey(), instructions, [], latest.blockhash)
    tx = sign_transaction(message, payer, signers)

    try:
        resp = client.send_raw_transaction(
            bytes(tx),
            opts=TxOpts(
                skip_preflight=False,
                preflight_commitment=Confirmed,
                last_valid_block_height=latest.last_valid_block_height,
            ),
        )
    except SolanaRpcException as exc:
        logger.warning("tx_send_transport_failed payer=%s error=%s", payer.pubkey(), exc, exc_info=True)
        raise NetworkError(exc) from exc
    except Exception as exc:  # noqa: BLE001
        logger.warning("tx_send_rejected payer=%s error=%s", payer.pubkey(), exc)
        raise TransactionError(exc) from exc

    signature = resp.value
    wait_for_confirmation(client, signature, timeout_sec=confirm_timeout)
    logger.info("tx_confirmed sig=%s payer=%s ixs=%s", signature, payer.pubkey(), len(instructions))
    return signature
