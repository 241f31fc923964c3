"""Compressed state - field elements, tree descriptors, leaves and proofs."""

from compressed_state.address import (
    derive_address,
    derive_address_seed,
    derive_address_seed_v2,
    derive_address_v2,
)
from compressed_state.errors import (
    AssemblyError,
    EncodingOverflow,
    InsufficientBalance,
    InvalidFieldElement,
    NoStateTreeAvailable,
    PackingInvariantViolation,
    ProofFetchFailed,
    StaleRoot,
    TooManyInputs,
    requires_restart,
)
from compressed_state.field import BN254, MODULUS, FieldElement
from compressed_state.leaf import (
    CompressedLeaf,
    LeafData,
    OutputLeaf,
    TokenAccountState,
    TokenData,
    TokenLeaf,
    TokenOutput,
)
from compressed_state.proof import (
    CompressedProof,
    ValidityProofBundle,
    parse_validity_proof,
)
from compressed_state.tree_info import (
    TreeDescriptor,
    TreeType,
    descriptors_from_lookup_table,
    select_state_tree,
    tree_type_from_key,
)

__all__ = [
    # Field
    "BN254",
    "MODULUS",
    "FieldElement",
    # Trees
    "TreeType",
    "TreeDescriptor",
    "descriptors_from_lookup_table",
    "select_state_tree",
    "tree_type_from_key",
    # Leaves
    "LeafData",
    "CompressedLeaf",
    "OutputLeaf",
    "TokenAccountState",
    "TokenData",
    "TokenLeaf",
    "TokenOutput",
    # Proofs
    "CompressedProof",
    "ValidityProofBundle",
    "parse_validity_proof",
    # Addresses
    "derive_address",
    "derive_address_seed",
    "derive_address_seed_v2",
    "derive_address_v2",
    # Errors
    "AssemblyError",
    "InvalidFieldElement",
    "InsufficientBalance",
    "TooManyInputs",
    "ProofFetchFailed",
    "StaleRoot",
    "NoStateTreeAvailable",
    "PackingInvariantViolation",
    "EncodingOverflow",
    "requires_restart",
]
