"""Compressed account leaves: inputs read from the indexer and outputs to create."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from solders.pubkey import Pubkey

from compressed_state.field import FieldElement
from compressed_state.tree_info import TreeDescriptor

# --- Constants ---

DISCRIMINATOR_SIZE = 8
DATA_HASH_SIZE = 32


# --- Attached Data ---

@dataclass(frozen=True)
class LeafData:
    """Typed data attached to a compressed account.

    Attributes:
        discriminator: 8-byte type tag chosen by the owning program
        data: Raw serialized account data
        data_hash: 32-byte Poseidon hash of data
    """
    discriminator: bytes
    data: bytes
    data_hash: bytes

    def __post_init__(self) -> None:
        for name in ("discriminator", "data", "data_hash"):
            value = getattr(self, name)
            if not isinstance(value, bytes):
                object.__setattr__(self, name, bytes(value))
        if len(self.discriminator) != DISCRIMINATOR_SIZE:
            raise ValueError(
                f"discriminator must be {DISCRIMINATOR_SIZE} bytes, got {len(self.discriminator)}"
            )
        if len(self.data_hash) != DATA_HASH_SIZE:
            raise ValueError(f"data_hash must be {DATA_HASH_SIZE} bytes, got {len(self.data_hash)}")


# --- Input Leaves ---

@dataclass(frozen=True)
class CompressedLeaf:
    """One compressed account as returned by the indexer.

    Attributes:
        owner: Program or user owning the account
        value: Lamports held by the account
        hash: Leaf hash stored in the state tree
        tree: Tree the leaf lives in
        leaf_index: Position of hash in the tree
        address: Persistent unique address, for accounts that have one
        data: Attached typed data
        read_only: Account is only read, not consumed, by the operation
        prove_by_index: Batched-tree leaf still in the queue; proven by index
    """
    owner: Pubkey
    value: int
    hash: FieldElement
    tree: TreeDescriptor
    leaf_index: int
    address: Optional[FieldElement] = None
    data: Optional[LeafData] = None
    read_only: bool = False
    prove_by_index: bool = False

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError(f"leaf value cannot be negative, got {self.value}")
        if self.leaf_index < 0:
            raise ValueError(f"leaf_index cannot be negative, got {self.leaf_index}")


class TokenAccountState(Enum):
    UNINITIALIZED = 0
    INITIALIZED = 1
    FROZEN = 2


@dataclass(frozen=True)
class TokenData:
    """Token balance carried in a compressed token account's data."""
    mint: Pubkey
    owner: Pubkey
    amount: int
    state: TokenAccountState = TokenAccountState.INITIALIZED
    delegate: Optional[Pubkey] = None
    tlv: Optional[bytes] = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"token amount cannot be negative, got {self.amount}")


@dataclass(frozen=True)
class TokenLeaf:
    """Compressed token account: the leaf plus its decoded token data."""
    leaf: CompressedLeaf
    token: TokenData

    @property
    def amount(self) -> int:
        return self.token.amount

    @property
    def hash(self) -> FieldElement:
        return self.leaf.hash


# --- Output Leaves ---

@dataclass(frozen=True)
class OutputLeaf:
    """Compressed account created by an operation (recipient or change leaf)."""
    owner: Pubkey
    value: int
    address: Optional[FieldElement] = None
    data: Optional[LeafData] = None

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError(f"output value cannot be negative, got {self.value}")


@dataclass(frozen=True)
class TokenOutput:
    """Compressed token account created by a token operation."""
    owner: Pubkey
    amount: int
    lamports: Optional[int] = None
    delegate: Optional[Pubkey] = None
    tlv: Optional[bytes] = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"token amount cannot be negative, got {self.amount}")


def sum_values(leaves) -> int:
    """Total lamports held by a sequence of leaves."""
    return sum(leaf.value for leaf in leaves)
