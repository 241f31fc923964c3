"""Merkle tree and queue descriptors."""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from solders.pubkey import Pubkey

from compressed_state.errors import NoStateTreeAvailable


# --- Tree Type Enum ---
class TreeType(Enum):
    """Version tag of a tree. Batched (v2) and address flags derive from it.

    Values match the indexer's numeric treeType.
    """
    STATE_V1 = 1    # concurrent Merkle tree, height 26
    ADDRESS_V1 = 2  # indexed Merkle tree, height 26
    STATE_V2 = 3    # batched Merkle tree, height 32
    ADDRESS_V2 = 4  # batched indexed Merkle tree, height 40

    @property
    def is_batched(self) -> bool:
        return self in (TreeType.STATE_V2, TreeType.ADDRESS_V2)

    @property
    def is_address_tree(self) -> bool:
        return self in (TreeType.ADDRESS_V1, TreeType.ADDRESS_V2)


@dataclass(frozen=True)
class TreeDescriptor:
    """Identity of a state or address tree and its queue.

    Attributes:
        tree: Merkle tree account
        queue: Nullifier/output queue account (same as tree for some v2 trees)
        tree_type: Version tag
        cpi_context: Cross-program-invocation context account, if any
        next_tree: Successor descriptor once this tree has rolled over
        rollover_threshold: Fill percentage at which the tree rolls over
    """
    tree: Pubkey
    queue: Pubkey
    tree_type: TreeType
    cpi_context: Optional[Pubkey] = None
    next_tree: Optional["TreeDescriptor"] = None
    rollover_threshold: Optional[int] = None

    @property
    def is_batched(self) -> bool:
        return self.tree_type.is_batched

    @property
    def is_address_tree(self) -> bool:
        return self.tree_type.is_address_tree

    def active(self) -> "TreeDescriptor":
        """Descriptor new leaves should go to: the successor after rollover, else self."""
        return self.next_tree if self.next_tree is not None else self

    def output_key(self) -> Pubkey:
        """Account that output leaves are appended through.

        Batched state trees take outputs via their queue; every other tree takes
        them directly.
        """
        if self.tree_type == TreeType.STATE_V2:
            return self.queue
        return self.tree


# --- Selection Helpers ---

_PREFIX_TYPES = (
    ("bmt", TreeType.STATE_V2),
    ("amt2", TreeType.ADDRESS_V2),
    ("smt", TreeType.STATE_V1),
    ("amt", TreeType.ADDRESS_V1),
)


def tree_type_from_key(tree: Pubkey) -> TreeType:
    """Infer a tree's version from its vanity base58 prefix (default state v2)."""
    text = str(tree)
    for prefix, tree_type in _PREFIX_TYPES:
        if text.startswith(prefix):
            return tree_type
    return TreeType.STATE_V2


def descriptors_from_lookup_table(addresses: Sequence[Pubkey]) -> list[TreeDescriptor]:
    """Decode a state-tree lookup table into descriptors.

    Tables hold [tree, queue, cpi_context] triplets. Legacy tables hold
    [tree, cpi_context] pairs where the tree doubles as its queue.
    """
    descriptors = []
    if len(addresses) % 3 == 0:
        for i in range(0, len(addresses), 3):
            tree, queue, cpi_context = addresses[i:i + 3]
            descriptors.append(TreeDescriptor(
                tree=tree,
                queue=queue,
                tree_type=tree_type_from_key(tree),
                cpi_context=cpi_context,
            ))
    elif len(addresses) % 2 == 0:
        for i in range(0, len(addresses), 2):
            tree, cpi_context = addresses[i:i + 2]
            descriptors.append(TreeDescriptor(
                tree=tree,
                queue=tree,
                tree_type=TreeType.STATE_V2,
                cpi_context=cpi_context,
            ))
    else:
        raise ValueError(f"lookup table of {len(addresses)} keys holds neither triplets nor pairs")
    return descriptors


def select_state_tree(
    descriptors: Sequence[TreeDescriptor],
    rng: Optional[random.Random] = None,
    prefer: Optional[TreeType] = TreeType.STATE_V2,
) -> TreeDescriptor:
    """Pick a state tree for new outputs.

    Spreads writes across trees at random; restricted to `prefer` when any tree
    of that type exists. Address trees are never chosen.
    """
    state_trees = [d for d in descriptors if not d.is_address_tree]
    if not state_trees:
        raise NoStateTreeAvailable("No state trees available")

    if prefer is not None:
        preferred = [d for d in state_trees if d.tree_type == prefer]
        if preferred:
            state_trees = preferred

    rng = rng or random.Random()
    return state_trees[rng.randrange(len(state_trees))]
