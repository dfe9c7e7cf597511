import base64
import hashlib
import os
from typing import List, Optional, Sequence

from borsh_construct import Bool, CStruct, Enum, Option, String, U16, U32, U64, U8, Vec
from construct import ConstructError
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID
from solders.system_program import CreateAccountParams, create_account

from chain_errors import SerializationError
from cnft_metadata import MetadataArgs


def load_pubkey(env_name: str, default: str) -> Pubkey:
    value = os.environ.get(env_name) or default
    try:
        return Pubkey.from_string(value)
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"{env_name} is not a valid pubkey: {exc}") from exc


# Overridable for localnet deployments of the programs.
BUBBLEGUM_PROGRAM_ID = load_pubkey("BUBBLEGUM_PROGRAM_ID", "BGUMAp9Gq7iTEuizy4pqaxsTyUCBK68MDfK752saRPUY")
COMPRESSION_PROGRAM_ID = load_pubkey("COMPRESSION_PROGRAM_ID", "cmtDvXumGCrqC1Age74AVPhSRVXJMd8PJS91L8KbNCK")
NOOP_PROGRAM_ID = load_pubkey("NOOP_PROGRAM_ID", "noopb9bkMVfRPU8AsbpTUg8AQkHtKwMYZiFUjNRtMmV")
TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

COLLECTION_CPI_SEED = b"collection_cpi"

# Default cluster rent: lamports per byte-year, exemption window in years, per-account overhead.
RENT_LAMPORTS_PER_BYTE_YEAR = 3480
RENT_EXEMPTION_YEARS = 2
ACCOUNT_STORAGE_OVERHEAD = 128

# account_type (u8) + header version (u8) + ConcurrentMerkleTreeHeaderDataV1 (54 bytes)
MERKLE_TREE_HEADER_SIZE = 2 + 54


PubkeyLayout = U8[32]
CreatorLayout = CStruct("address" / PubkeyLayout, "verified" / Bool, "share" / U8)
CollectionLayout = CStruct("verified" / Bool, "key" / PubkeyLayout)
UseMethodLayout = Enum("Burn" / CStruct(), "Multiple" / CStruct(), "Single" / CStruct(), enum_name="UseMethod")
UsesLayout = CStruct("use_method" / UseMethodLayout, "remaining" / U64, "total" / U64)
TokenStandardLayout = Enum(
    "NonFungible" / CStruct(),
    "FungibleAsset" / CStruct(),
    "Fungible" / CStruct(),
    "NonFungibleEdition" / CStruct(),
    enum_name="TokenStandard",
)
TokenProgramVersionLayout = Enum(
    "Original" / CStruct(), "Token2022" / CStruct(), enum_name="TokenProgramVersion"
)
MetadataArgsLayout = CStruct(
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "primary_sale_happened" / Bool,
    "is_mutable" / Bool,
    "edition_nonce" / Option(U8),
    "token_standard" / Option(TokenStandardLayout),
    "collection" / Option(CollectionLayout),
    "uses" / Option(UsesLayout),
    "token_program_version" / TokenProgramVersionLayout,
    "creators" / Vec(CreatorLayout),
)
CreateTreeLayout = CStruct(
    "max_depth" / U32,
    "max_buffer_size" / U32,
    "public" / Option(Bool),
)
TransferLayout = CStruct(
    "root" / U8[32],
    "data_hash" / U8[32],
    "creator_hash" / U8[32],
    "nonce" / U64,
    "index" / U32,
)


def sighash(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def tree_config_pda(merkle_tree: Pubkey) -> Pubkey:
    return Pubkey.find_program_address([bytes(merkle_tree)], BUBBLEGUM_PROGRAM_ID)[0]


def bubblegum_signer_pda() -> Pubkey:
    return Pubkey.find_program_address([COLLECTION_CPI_SEED], BUBBLEGUM_PROGRAM_ID)[0]


def metadata_pda(mint: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)], TOKEN_METADATA_PROGRAM_ID
    )[0]


def master_edition_pda(mint: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint), b"edition"], TOKEN_METADATA_PROGRAM_ID
    )[0]


def merkle_tree_account_size(max_depth: int, max_buffer_size: int, canopy_depth: int = 0) -> int:
    # ChangeLog and Path are both D nodes + one node + u32 index + u32 padding.
    change_log_size = 32 * max_depth + 40
    rightmost_path_size = 32 * max_depth + 40
    # sequence_number, active_index, buffer_size: three u64 counters.
    tree_size = 24 + max_buffer_size * change_log_size + rightmost_path_size
    canopy_size = ((1 << (canopy_depth + 1)) - 2) * 32 if canopy_depth > 0 else 0
    return MERKLE_TREE_HEADER_SIZE + tree_size + canopy_size


def rent_exempt_lamports(space: int) -> int:
    return (space + ACCOUNT_STORAGE_OVERHEAD) * RENT_LAMPORTS_PER_BYTE_YEAR * RENT_EXEMPTION_YEARS


def _build(layout, values: dict) -> bytes:
    try:
        return layout.build(values)
    except ConstructError as exc:
        raise SerializationError(exc) from exc


def encode_create_tree(max_depth: int, max_buffer_size: int, public: Optional[bool]) -> bytes:
    data = _build(
        CreateTreeLayout,
        {
            "max_depth": max_depth,
            "max_buffer_size": max_buffer_size,
            "public": public,
        },
    )
    return sighash("create_tree") + data


def _enum_variant(layout, name: str):
    return getattr(layout.enum, name)()


def encode_metadata_args(metadata: MetadataArgs) -> bytes:
    collection = None
    if metadata.collection is not None:
        collection = {"verified": metadata.collection.verified, "key": list(bytes(metadata.collection.key))}
    uses = None
    if metadata.uses is not None:
        uses = {
            "use_method": _enum_variant(UseMethodLayout, metadata.uses.use_method),
            "remaining": metadata.uses.remaining,
            "total": metadata.uses.total,
        }
    token_standard = None
    if metadata.token_standard is not None:
        token_standard = _enum_variant(TokenStandardLayout, metadata.token_standard)
    return _build(
        MetadataArgsLayout,
        {
            "name": metadata.name,
            "symbol": metadata.symbol,
            "uri": metadata.uri,
            "seller_fee_basis_points": metadata.seller_fee_basis_points,
            "primary_sale_happened": metadata.primary_sale_happened,
            "is_mutable": metadata.is_mutable,
            "edition_nonce": metadata.edition_nonce,
            "token_standard": token_standard,
            "collection": collection,
            "uses": uses,
            "token_program_version": _enum_variant(TokenProgramVersionLayout, metadata.token_program_version),
            "creators": [
                {"address": list(bytes(c.address)), "verified": c.verified, "share": c.share}
                for c in metadata.creators
            ],
        },
    )


def encode_mint_to_collection_v1(metadata: MetadataArgs) -> bytes:
    return sighash("mint_to_collection_v1") + encode_metadata_args(metadata)


def encode_transfer(root: bytes, data_hash: bytes, creator_hash: bytes, nonce: int, index: int) -> bytes:
    data = _build(
        TransferLayout,
        {
            "root": list(root),
            "data_hash": list(data_hash),
            "creator_hash": list(creator_hash),
            "nonce": nonce,
            "index": index,
        },
    )
    return sighash("transfer") + data


def build_create_tree_account_ix(payer: Pubkey, merkle_tree: Pubkey, space: int, lamports: int) -> Instruction:
    # space and lamports are u64 on the wire.
    if not 0 <= space < 1 << 64 or not 0 <= lamports < 1 << 64:
        raise SerializationError(f"tree account space={space} lamports={lamports} out of u64 range")
    return create_account(
        CreateAccountParams(
            from_pubkey=payer,
            to_pubkey=merkle_tree,
            lamports=lamports,
            space=space,
            owner=COMPRESSION_PROGRAM_ID,
        )
    )


def build_create_tree_config_ix(
    payer: Pubkey,
    merkle_tree: Pubkey,
    tree_creator: Pubkey,
    max_depth: int,
    max_buffer_size: int,
    public: Optional[bool],
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=tree_config_pda(merkle_tree), is_signer=False, is_writable=True),
        AccountMeta(pubkey=merkle_tree, is_signer=False, is_writable=True),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=tree_creator, is_signer=True, is_writable=False),
        AccountMeta(pubkey=NOOP_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=COMPRESSION_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    data = encode_create_tree(max_depth, max_buffer_size, public)
    return Instruction(program_id=BUBBLEGUM_PROGRAM_ID, data=data, accounts=accounts)


def build_mint_to_collection_v1_ix(
    payer: Pubkey,
    merkle_tree: Pubkey,
    tree_creator_or_delegate: Pubkey,
    collection_mint: Pubkey,
    collection_authority: Pubkey,
    metadata: MetadataArgs,
    leaf_owner: Optional[Pubkey] = None,
    leaf_delegate: Optional[Pubkey] = None,
    collection_authority_record_pda: Optional[Pubkey] = None,
) -> Instruction:
    owner = leaf_owner or payer
    delegate = leaf_delegate or owner
    # An absent optional account is passed as the program id itself.
    authority_record = collection_authority_record_pda or BUBBLEGUM_PROGRAM_ID
    accounts = [
        AccountMeta(pubkey=tree_config_pda(merkle_tree), is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=delegate, is_signer=False, is_writable=False),
        AccountMeta(pubkey=merkle_tree, is_signer=False, is_writable=True),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=False),
        AccountMeta(pubkey=tree_creator_or_delegate, is_signer=True, is_writable=False),
        AccountMeta(pubkey=collection_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=authority_record, is_signer=False, is_writable=False),
        AccountMeta(pubkey=collection_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=metadata_pda(collection_mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=master_edition_pda(collection_mint), is_signer=False, is_writable=False),
        AccountMeta(pubkey=bubblegum_signer_pda(), is_signer=False, is_writable=False),
        AccountMeta(pubkey=NOOP_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=COMPRESSION_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_METADATA_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    data = encode_mint_to_collection_v1(metadata)
    return Instruction(program_id=BUBBLEGUM_PROGRAM_ID, data=data, accounts=accounts)


def build_transfer_ix(
    merkle_tree: Pubkey,
    leaf_owner: Pubkey,
    new_leaf_owner: Pubkey,
    root: bytes,
    data_hash: bytes,
    creator_hash: bytes,
    nonce: int,
    index: int,
    proof: Sequence[Pubkey] = (),
    leaf_delegate: Optional[Pubkey] = None,
    canopy_depth: int = 0,
) -> Instruction:
    accounts: List[AccountMeta] = [
        AccountMeta(pubkey=tree_config_pda(merkle_tree), is_signer=False, is_writable=False),
        AccountMeta(pubkey=leaf_owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=leaf_delegate or leaf_owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=new_leaf_owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=merkle_tree, is_signer=False, is_writable=True),
        AccountMeta(pubkey=NOOP_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=COMPRESSION_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    # Nodes held in the on-chain canopy are not passed.
    kept = len(proof) - canopy_depth if canopy_depth > 0 else len(proof)
    accounts.extend(
        [AccountMeta(pubkey=node, is_signer=False, is_writable=False) for node in list(proof)[: max(kept, 0)]]
    )
    data = encode_transfer(root, data_hash, creator_hash, nonce, index)
    return Instruction(program_id=BUBBLEGUM_PROGRAM_ID, data=data, accounts=accounts)


def instruction_to_dict(ix: Instruction) -> dict:
    return {
        "program_id": str(ix.program_id),
        "keys": [
            {
                "pubkey": str(k.pubkey),
                "is_signer": k.is_signer,
                "is_writable": k.is_writable,
            }
            for k in ix.accounts
        ],
        "data": base64.b64encode(ix.data).decode(),
    }
