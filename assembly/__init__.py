"""Assembly - input selection, proof coordination, packing and instruction encoding."""

from assembly.config import AssemblyConfig
from assembly.indexer import (
    Indexer,
    LeafPage,
    TokenLeafPage,
    parse_leaf,
    parse_leaf_page,
    parse_token_leaf,
    parse_token_leaf_page,
)
from assembly.instruction import (
    AssembledInstruction,
    assemble,
    encode_invoke,
    encode_token_transfer,
)
from assembly.orchestrator import Broadcaster, Operation, OperationState
from assembly.packing import (
    FixedAccount,
    IndexTable,
    NewAddress,
    PackedAccounts,
    PackedAddressReference,
    PackedTreeReference,
    pack,
    pack_tokens,
)
from assembly.proof_coordinator import ProofCoordinator, ProvenLeaf
from assembly.selection import (
    Selection,
    collect_leaves,
    collect_token_leaves,
    descending_greedy,
    select_leaves,
)

__all__ = [
    # Configuration
    "AssemblyConfig",
    # Indexer
    "Indexer",
    "LeafPage",
    "TokenLeafPage",
    "parse_leaf",
    "parse_leaf_page",
    "parse_token_leaf",
    "parse_token_leaf_page",
    # Selection
    "Selection",
    "select_leaves",
    "descending_greedy",
    "collect_leaves",
    "collect_token_leaves",
    # Proofs
    "ProofCoordinator",
    "ProvenLeaf",
    # Packing
    "FixedAccount",
    "IndexTable",
    "NewAddress",
    "PackedAccounts",
    "PackedAddressReference",
    "PackedTreeReference",
    "pack",
    "pack_tokens",
    # Encoding
    "AssembledInstruction",
    "assemble",
    "encode_invoke",
    "encode_token_transfer",
    # Orchestration
    "Operation",
    "OperationState",
    "Broadcaster",
]
