"""Index packing: one deduplicated account table shared by metas and payload.

Every public key an operation touches is stored once in an IndexTable. Inputs,
outputs and new-address requests then refer to trees and queues by their u8
position in that table.
"""

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Sequence

from solders.instruction import AccountMeta
from solders.pubkey import Pubkey

from assembly.config import MAX_PACKED_ACCOUNTS
from compressed_state.errors import PackingInvariantViolation
from compressed_state.leaf import CompressedLeaf, OutputLeaf, TokenLeaf, TokenOutput
from compressed_state.tree_info import TreeDescriptor


# --- Index Table ---

@dataclass(frozen=True)
class FixedAccount:
    """Participant account placed at the head of the table."""
    pubkey: Pubkey
    is_signer: bool = False
    is_writable: bool = False


@dataclass
class _Entry:
    pubkey: Pubkey
    is_signer: bool
    is_writable: bool


class IndexTable:
    """Ordered, deduplicated account keys with first-seen insertion order.

    Adding a key that is already present returns its existing position and
    widens its flags (signer or writable stays set once set).
    """

    def __init__(self, max_size: int = MAX_PACKED_ACCOUNTS):
        self.max_size = max_size
        self._entries: list[_Entry] = []
        self._positions: dict[Pubkey, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, pubkey: Pubkey) -> bool:
        return pubkey in self._positions

    def __iter__(self) -> Iterator[Pubkey]:
        return (e.pubkey for e in self._entries)

    @property
    def keys(self) -> list[Pubkey]:
        return [e.pubkey for e in self._entries]

    def index_of(self, pubkey: Pubkey) -> int:
        return self._positions[pubkey]

    def get_index_or_add(self, pubkey: Pubkey, is_signer: bool = False, is_writable: bool = False) -> int:
        index = self._positions.get(pubkey)
        if index is not None:
            entry = self._entries[index]
            entry.is_signer = entry.is_signer or is_signer
            entry.is_writable = entry.is_writable or is_writable
            return index

        if len(self._entries) >= self.max_size:
            raise PackingInvariantViolation(
                f"account table full: {self.max_size} entries, indices must fit in u8"
            )
        self._entries.append(_Entry(pubkey, is_signer, is_writable))
        self._positions[pubkey] = len(self._entries) - 1
        return len(self._entries) - 1

    def add_fixed(self, account: FixedAccount) -> int:
        return self.get_index_or_add(account.pubkey, account.is_signer, account.is_writable)

    def verify(self, indices: Iterable[int] = ()) -> None:
        """Re-check uniqueness, size and that every index points into the table."""
        keys = self.keys
        if len(set(keys)) != len(keys):
            raise PackingInvariantViolation("duplicate key in account table")
        if len(keys) > self.max_size:
            raise PackingInvariantViolation(f"account table has {len(keys)} entries, max {self.max_size}")
        for index in indices:
            if not 0 <= index < len(keys):
                raise PackingInvariantViolation(f"packed index {index} outside table of {len(keys)}")

    def to_account_metas(self) -> list[AccountMeta]:
        return [AccountMeta(e.pubkey, e.is_signer, e.is_writable) for e in self._entries]


# --- Packed References ---

@dataclass(frozen=True)
class PackedTreeReference:
    """Where an input leaf lives, expressed as table positions."""
    root_index: int
    prove_by_index: bool
    tree_index: int
    queue_index: int
    leaf_index: int


@dataclass(frozen=True)
class PackedInput:
    leaf: CompressedLeaf
    reference: PackedTreeReference


@dataclass(frozen=True)
class PackedTokenInput:
    leaf: TokenLeaf
    reference: PackedTreeReference
    delegate_index: Optional[int] = None


@dataclass(frozen=True)
class PackedOutput:
    leaf: OutputLeaf
    tree_index: int


@dataclass(frozen=True)
class PackedTokenOutput:
    output: TokenOutput
    tree_index: int


@dataclass(frozen=True)
class NewAddress:
    """Request to create a unique address in an address tree.

    Attributes:
        seed: 32-byte address seed (see compressed_state.address)
        address_tree: Address tree descriptor; its queue may equal its tree
    """
    seed: bytes
    address_tree: TreeDescriptor

    def __post_init__(self) -> None:
        object.__setattr__(self, "seed", bytes(self.seed))
        if len(self.seed) != 32:
            raise ValueError(f"address seed must be 32 bytes, got {len(self.seed)}")
        if not self.address_tree.is_address_tree:
            raise ValueError(f"{self.address_tree.tree} is not an address tree")


@dataclass(frozen=True)
class PackedAddressReference:
    seed: bytes
    queue_index: int
    tree_index: int
    root_index: int


@dataclass(frozen=True)
class PackedAccounts:
    """Result of packing: the final table plus every index-bearing record."""
    table: IndexTable
    inputs: tuple = field(default_factory=tuple)
    outputs: tuple = field(default_factory=tuple)
    new_addresses: tuple[PackedAddressReference, ...] = field(default_factory=tuple)

    def indices(self) -> list[int]:
        """Every table position referenced by the packed records."""
        out = []
        for packed in self.inputs:
            out += [packed.reference.tree_index, packed.reference.queue_index]
            if getattr(packed, "delegate_index", None) is not None:
                out.append(packed.delegate_index)
        out += [o.tree_index for o in self.outputs]
        for a in self.new_addresses:
            out += [a.queue_index, a.tree_index]
        return out


# --- Packing ---

def resolve_output_tree(
    input_trees: Sequence[TreeDescriptor],
    output_tree: Optional[TreeDescriptor],
    has_outputs: bool,
) -> Optional[TreeDescriptor]:
    """Descriptor outputs are appended to, following rollover.

    The first input's tree is used when there are inputs; otherwise the
    explicit output_tree. Supplying both, or neither while outputs exist,
    is a caller error.
    """
    if input_trees and output_tree is not None:
        raise ValueError("Cannot specify both input accounts and output_tree")
    if input_trees:
        return input_trees[0].active()
    if output_tree is not None:
        return output_tree.active()
    if has_outputs:
        raise ValueError("Neither input accounts nor output_tree are available")
    return None


def _new_table(fixed_accounts: Sequence[FixedAccount]) -> IndexTable:
    table = IndexTable()
    for account in fixed_accounts:
        table.add_fixed(account)
    return table


def _check_root_indices(inputs: Sequence, root_indices: Sequence[int], what: str) -> None:
    if len(root_indices) != len(inputs):
        raise PackingInvariantViolation(
            f"{len(inputs)} {what} but {len(root_indices)} root indices"
        )


def _pack_reference(table: IndexTable, leaf: CompressedLeaf, root_index: int) -> PackedTreeReference:
    tree_index = table.get_index_or_add(leaf.tree.tree, is_writable=True)
    queue_index = table.get_index_or_add(leaf.tree.queue, is_writable=True)
    return PackedTreeReference(
        root_index=int(root_index),
        prove_by_index=leaf.prove_by_index,
        tree_index=tree_index,
        queue_index=queue_index,
        leaf_index=leaf.leaf_index,
    )


def _pack_new_addresses(
    table: IndexTable,
    new_addresses: Sequence[NewAddress],
    address_root_indices: Sequence[int],
) -> tuple[PackedAddressReference, ...]:
    _check_root_indices(new_addresses, address_root_indices, "new addresses")
    packed = []
    for request, root_index in zip(new_addresses, address_root_indices):
        queue_index = table.get_index_or_add(request.address_tree.queue, is_writable=True)
        tree_index = table.get_index_or_add(request.address_tree.tree, is_writable=True)
        packed.append(PackedAddressReference(
            seed=request.seed,
            queue_index=queue_index,
            tree_index=tree_index,
            root_index=int(root_index),
        ))
    return tuple(packed)


def pack(
    fixed_accounts: Sequence[FixedAccount],
    inputs: Sequence[CompressedLeaf],
    root_indices: Sequence[int],
    outputs: Sequence[OutputLeaf],
    output_tree: Optional[TreeDescriptor] = None,
    new_addresses: Sequence[NewAddress] = (),
    address_root_indices: Sequence[int] = (),
) -> PackedAccounts:
    """Pack an invoke operation.

    Table order is fixed accounts, then each input's tree and queue, then the
    output key, then each new address's queue and tree.

    Args:
        fixed_accounts: Participants, in the order they should appear
        inputs: Leaves to consume, in proof-request order
        root_indices: One root index per input, positionally aligned
        outputs: Leaves to create
        output_tree: Output destination when there are no inputs
        new_addresses: Addresses to create
        address_root_indices: One root index per new address

    Raises:
        PackingInvariantViolation: misaligned root indices or an over-full table
        ValueError: ambiguous or missing output tree
    """
    _check_root_indices(inputs, root_indices, "inputs")
    table = _new_table(fixed_accounts)

    packed_inputs = tuple(
        PackedInput(leaf=leaf, reference=_pack_reference(table, leaf, root_index))
        for leaf, root_index in zip(inputs, root_indices)
    )

    tree = resolve_output_tree([leaf.tree for leaf in inputs], output_tree, bool(outputs))
    packed_outputs = ()
    if outputs:
        tree_index = table.get_index_or_add(tree.output_key(), is_writable=True)
        packed_outputs = tuple(PackedOutput(leaf=o, tree_index=tree_index) for o in outputs)

    packed = PackedAccounts(
        table=table,
        inputs=packed_inputs,
        outputs=packed_outputs,
        new_addresses=_pack_new_addresses(table, new_addresses, address_root_indices),
    )
    table.verify(packed.indices())
    return packed


def pack_tokens(
    fixed_accounts: Sequence[FixedAccount],
    inputs: Sequence[TokenLeaf],
    root_indices: Sequence[int],
    outputs: Sequence[TokenOutput],
    output_tree: Optional[TreeDescriptor] = None,
) -> PackedAccounts:
    """Pack a token transfer.

    Same ordering as pack. Token outputs always reference the active tree
    account itself, never its queue.
    """
    _check_root_indices(inputs, root_indices, "token inputs")
    table = _new_table(fixed_accounts)

    packed_inputs = []
    for token_leaf, root_index in zip(inputs, root_indices):
        reference = _pack_reference(table, token_leaf.leaf, root_index)
        delegate_index = None
        if token_leaf.token.delegate is not None:
            delegate_index = table.get_index_or_add(token_leaf.token.delegate)
        packed_inputs.append(PackedTokenInput(token_leaf, reference, delegate_index))

    tree = resolve_output_tree([t.leaf.tree for t in inputs], output_tree, bool(outputs))
    packed_outputs = ()
    if outputs:
        tree_index = table.get_index_or_add(tree.tree, is_writable=True)
        packed_outputs = tuple(PackedTokenOutput(output=o, tree_index=tree_index) for o in outputs)

    packed = PackedAccounts(table=table, inputs=tuple(packed_inputs), outputs=packed_outputs)
    table.verify(packed.indices())
    return packed
