"""Instruction payload encoding for the system and token programs.

Both programs take `[discriminator (8)][u32 length][borsh body]`. The body
refers to accounts only through positions in the packed IndexTable, so the
account metas emitted alongside it are exactly that table in order.

Layouts are declared with borsh_construct; a value that does not fit its
field surfaces as EncodingOverflow.
"""

from dataclasses import dataclass
from typing import Any, Optional

from borsh_construct import Bool, CStruct, Option, U16, U32, U64, U8, Vec
from construct import Construct, ConstructError
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from assembly.packing import (
    PackedAccounts,
    PackedAddressReference,
    PackedInput,
    PackedOutput,
    PackedTokenInput,
    PackedTokenOutput,
    PackedTreeReference,
)
from compressed_state.errors import EncodingOverflow
from compressed_state.proof import CompressedProof

# --- Layouts ---

DiscriminatorLayout = U8[8]

CompressedProofLayout = CStruct(
    "a" / U8[32],
    "b" / U8[64],
    "c" / U8[32],
)
LeafDataLayout = CStruct(
    "discriminator" / U8[8],
    "data" / Vec(U8),
    "data_hash" / U8[32],
)
AccountLayout = CStruct(
    "owner" / U8[32],
    "value" / U64,
    "address" / Option(U8[32]),
    "data" / Option(LeafDataLayout),
)
MerkleContextLayout = CStruct(
    "tree_index" / U8,
    "queue_index" / U8,
    "leaf_index" / U32,
    "prove_by_index" / Bool,
)
InputLayout = CStruct(
    "account" / AccountLayout,
    "merkle_context" / MerkleContextLayout,
    "root_index" / U16,
    "read_only" / Bool,
)
OutputLayout = CStruct(
    "account" / AccountLayout,
    "tree_index" / U8,
)
NewAddressLayout = CStruct(
    "seed" / U8[32],
    "queue_index" / U8,
    "tree_index" / U8,
    "root_index" / U16,
)
InvokeLayout = CStruct(
    "proof" / Option(CompressedProofLayout),
    "inputs" / Vec(InputLayout),
    "outputs" / Vec(OutputLayout),
    "relay_fee" / Option(U64),
    "new_addresses" / Vec(NewAddressLayout),
    "compress_or_decompress" / Option(U64),
    "is_compress" / Bool,
)

TokenInputLayout = CStruct(
    "amount" / U64,
    "delegate_index" / Option(U8),
    "merkle_context" / MerkleContextLayout,
    "root_index" / U16,
    "lamports" / Option(U64),
    "tlv" / Option(Vec(U8)),
)
TokenOutputLayout = CStruct(
    "owner" / U8[32],
    "amount" / U64,
    "lamports" / Option(U64),
    "tree_index" / U8,
    "tlv" / Option(Vec(U8)),
)
DelegatedTransferLayout = CStruct(
    "owner" / U8[32],
    "delegate_change_index" / Option(U8),
)
CpiContextLayout = CStruct(
    "set_context" / Bool,
    "first_set_context" / Bool,
    "cpi_context_index" / U8,
)
TokenTransferLayout = CStruct(
    "proof" / Option(CompressedProofLayout),
    "mint" / U8[32],
    "delegated_transfer" / Option(DelegatedTransferLayout),
    "inputs" / Vec(TokenInputLayout),
    "outputs" / Vec(TokenOutputLayout),
    "is_compress" / Bool,
    "compress_or_decompress" / Option(U64),
    "cpi_context" / Option(CpiContextLayout),
    "lamports_change_tree_index" / Option(U8),
)


def _build(layout: Construct, value: Any) -> bytes:
    try:
        return layout.build(value)
    except ConstructError as exc:
        raise EncodingOverflow(f"cannot encode instruction field: {exc}") from exc


# --- Assembled Instruction ---

@dataclass(frozen=True)
class AssembledInstruction:
    """Program id, payload and account list ready for signing.

    Attributes:
        program_id: Program that executes the instruction
        data: Framed instruction payload
        account_metas: Table entries in index order
        signers: Keys that must sign, in table order
    """
    program_id: Pubkey
    data: bytes
    account_metas: tuple[AccountMeta, ...]
    signers: tuple[Pubkey, ...]

    def to_instruction(self) -> Instruction:
        return Instruction(self.program_id, self.data, list(self.account_metas))


def frame(discriminator: bytes, body: bytes) -> bytes:
    """Prefix body with its 8-byte discriminator and u32 length."""
    return _build(DiscriminatorLayout, list(discriminator)) + _build(U32, len(body)) + body


# --- Record Values ---

def _proof(proof: Optional[CompressedProof]) -> Optional[dict]:
    if proof is None:
        return None
    return {"a": list(proof.a), "b": list(proof.b), "c": list(proof.c)}


def _account(owner: Pubkey, value: int, address, data) -> dict:
    return {
        "owner": list(bytes(owner)),
        "value": value,
        "address": None if address is None else list(address.to_bytes()),
        "data": None if data is None else {
            "discriminator": list(data.discriminator),
            "data": list(data.data),
            "data_hash": list(data.data_hash),
        },
    }


def _merkle_context(ref: PackedTreeReference) -> dict:
    return {
        "tree_index": ref.tree_index,
        "queue_index": ref.queue_index,
        "leaf_index": ref.leaf_index,
        "prove_by_index": ref.prove_by_index,
    }


def _input(packed: PackedInput) -> dict:
    leaf = packed.leaf
    return {
        "account": _account(leaf.owner, leaf.value, leaf.address, leaf.data),
        "merkle_context": _merkle_context(packed.reference),
        "root_index": packed.reference.root_index,
        "read_only": leaf.read_only,
    }


def _output(packed: PackedOutput) -> dict:
    leaf = packed.leaf
    return {
        "account": _account(leaf.owner, leaf.value, leaf.address, leaf.data),
        "tree_index": packed.tree_index,
    }


def _new_address(packed: PackedAddressReference) -> dict:
    return {
        "seed": list(packed.seed),
        "queue_index": packed.queue_index,
        "tree_index": packed.tree_index,
        "root_index": packed.root_index,
    }


def _tlv(tlv: Optional[bytes]) -> Optional[list[int]]:
    return None if tlv is None else list(tlv)


def _token_input(packed: PackedTokenInput) -> dict:
    return {
        "amount": packed.leaf.amount,
        "delegate_index": packed.delegate_index,
        "merkle_context": _merkle_context(packed.reference),
        "root_index": packed.reference.root_index,
        "lamports": None,
        "tlv": _tlv(packed.leaf.token.tlv),
    }


def _token_output(packed: PackedTokenOutput) -> dict:
    out = packed.output
    return {
        "owner": list(bytes(out.owner)),
        "amount": out.amount,
        "lamports": out.lamports,
        "tree_index": packed.tree_index,
        "tlv": _tlv(out.tlv),
    }


# --- Payloads ---

def encode_invoke(
    discriminator: bytes,
    proof: Optional[CompressedProof],
    packed: PackedAccounts,
    relay_fee: Optional[int] = None,
    compress_or_decompress: Optional[int] = None,
    is_compress: bool = False,
) -> bytes:
    body = _build(InvokeLayout, {
        "proof": _proof(proof),
        "inputs": [_input(p) for p in packed.inputs],
        "outputs": [_output(p) for p in packed.outputs],
        "relay_fee": relay_fee,
        "new_addresses": [_new_address(p) for p in packed.new_addresses],
        "compress_or_decompress": compress_or_decompress,
        "is_compress": is_compress,
    })
    return frame(discriminator, body)


def encode_token_transfer(
    discriminator: bytes,
    proof: Optional[CompressedProof],
    mint: Pubkey,
    packed: PackedAccounts,
    is_compress: bool = False,
    compress_or_decompress: Optional[int] = None,
) -> bytes:
    body = _build(TokenTransferLayout, {
        "proof": _proof(proof),
        "mint": list(bytes(mint)),
        "delegated_transfer": None,
        "inputs": [_token_input(p) for p in packed.inputs],
        "outputs": [_token_output(p) for p in packed.outputs],
        "is_compress": is_compress,
        "compress_or_decompress": compress_or_decompress,
        "cpi_context": None,
        "lamports_change_tree_index": None,
    })
    return frame(discriminator, body)


def assemble(program_id: Pubkey, data: bytes, packed: PackedAccounts) -> AssembledInstruction:
    """Bundle payload and table; the table must not change after encoding."""
    metas = tuple(packed.table.to_account_metas())
    return AssembledInstruction(
        program_id=program_id,
        data=data,
        account_metas=metas,
        signers=tuple(m.pubkey for m in metas if m.is_signer),
    )
