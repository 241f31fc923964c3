"""Operation state machine: select, prove, pack, assemble, hand off.

One Operation instance handles one intent. Its state only moves forward:

    SELECTING -> PROVING_REQUESTED -> PACKING -> ASSEMBLED -> HANDED_OFF

Any exception moves it to FAILED and is re-raised unchanged. A StaleRoot
failure means the selection is no longer provable; the caller starts a new
Operation (see compressed_state.errors.requires_restart). Nothing is retried
internally.
"""

import logging
import random
from enum import Enum
from typing import Optional, Protocol, Sequence

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from assembly.config import AssemblyConfig
from assembly.instruction import AssembledInstruction, assemble, encode_invoke, encode_token_transfer
from assembly.packing import FixedAccount, NewAddress, PackedAccounts, pack, pack_tokens
from assembly.proof_coordinator import ProofCoordinator, ProvenLeaf
from assembly.selection import Selection, collect_leaves, collect_token_leaves, select_leaves, token_amount
from compressed_state.address import (
    derive_address,
    derive_address_seed,
    derive_address_seed_v2,
    derive_address_v2,
)
from compressed_state.field import FieldElement
from compressed_state.leaf import OutputLeaf, TokenOutput
from compressed_state.proof import ValidityProofBundle
from compressed_state.tree_info import TreeDescriptor, descriptors_from_lookup_table, select_state_tree

logger = logging.getLogger(__name__)


class OperationState(Enum):
    SELECTING = 0
    PROVING_REQUESTED = 1
    PACKING = 2
    ASSEMBLED = 3
    HANDED_OFF = 4
    FAILED = -1


_FORWARD = [
    OperationState.SELECTING,
    OperationState.PROVING_REQUESTED,
    OperationState.PACKING,
    OperationState.ASSEMBLED,
    OperationState.HANDED_OFF,
]


class Broadcaster(Protocol):
    """External signer and sender. Returns the transaction signature."""

    async def submit(self, instruction: Instruction, signers: Sequence[Pubkey]) -> str:
        ...


def _require_amount(amount: int, allow_zero: bool = False) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"amount must be an int, got {type(amount).__name__}")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValueError(f"amount must be positive, got {amount}")


class Operation:
    """Single-use pipeline for one intent.

    Attributes:
        state: Current OperationState
        selection: Inputs chosen for the intent (snapshot reused for packing)
        bundle: Validity proof returned for the selection
        proven: Selected leaves paired with their root indices
        packed: Index table and packed records
        instruction: Assembled instruction, once ASSEMBLED
        signature: Broadcaster result, once HANDED_OFF
        address: Derived address, for create_account
    """

    def __init__(self, indexer, config: Optional[AssemblyConfig] = None, rng: Optional[random.Random] = None):
        self.indexer = indexer
        self.config = config or AssemblyConfig.default()
        self.rng = rng
        self.coordinator = ProofCoordinator(indexer)
        self.state = OperationState.SELECTING
        self.selection: Optional[Selection] = None
        self.bundle: Optional[ValidityProofBundle] = None
        self.proven: list[ProvenLeaf] = []
        self.packed: Optional[PackedAccounts] = None
        self.instruction: Optional[AssembledInstruction] = None
        self.signature: Optional[str] = None
        self.address: Optional[FieldElement] = None

    # --- State ---

    def _advance(self, target: OperationState) -> None:
        if self.state == OperationState.FAILED:
            raise RuntimeError("operation has failed; start a new operation")
        current = _FORWARD.index(self.state)
        if _FORWARD.index(target) != current + 1:
            raise RuntimeError(f"cannot move from {self.state.name} to {target.name}")
        logger.debug("Operation %#x: %s -> %s", id(self), self.state.name, target.name)
        self.state = target

    def _require(self, state: OperationState) -> None:
        if self.state != state:
            raise RuntimeError(f"operation is {self.state.name}, expected {state.name}")

    async def _run(self, steps):
        self._require(OperationState.SELECTING)
        try:
            return await steps()
        except BaseException:
            self.state = OperationState.FAILED
            raise

    def _fixed(self, *accounts: FixedAccount) -> list[FixedAccount]:
        return list(accounts) + [FixedAccount(pk) for pk in self.config.extra_accounts]

    def _output_tree(self, output_tree: Optional[TreeDescriptor]) -> TreeDescriptor:
        """Explicit output tree, else one picked from the configured state trees."""
        if output_tree is None:
            trees = descriptors_from_lookup_table(self.config.state_trees)
            return select_state_tree(trees, rng=self.rng)
        if output_tree.is_address_tree:
            raise ValueError(f"{output_tree.tree} is an address tree; outputs need a state tree")
        return output_tree

    async def _select(self, owner: Pubkey, amount: int) -> tuple:
        leaves = await collect_leaves(self.indexer, owner, amount, self.config.page_size)
        self.selection = select_leaves(leaves, amount, max_inputs=self.config.max_inputs)
        return tuple(self.selection.leaves)

    async def _prove(self, leaves: tuple, new_addresses: Sequence[FieldElement] = ()) -> ValidityProofBundle:
        self._advance(OperationState.PROVING_REQUESTED)
        self.bundle = await self.coordinator.request([leaf.hash for leaf in leaves], new_addresses)
        self.proven = self.coordinator.bind(leaves, self.bundle, len(new_addresses))
        return self.bundle

    def root_indices(self) -> list[int]:
        """Root index of each selected leaf, in selection order."""
        return [p.root_index for p in self.proven]

    def _finish(self, program_id: Pubkey, data: bytes, packed: PackedAccounts, kind: str) -> AssembledInstruction:
        self.instruction = assemble(program_id, data, packed)
        self._advance(OperationState.ASSEMBLED)
        logger.info(
            "Assembled %s: %d inputs, %d outputs, %d accounts, %d bytes",
            kind, len(packed.inputs), len(packed.outputs), len(packed.table), len(data),
        )
        return self.instruction

    # --- Operations ---

    async def move_in(
        self,
        payer: Pubkey,
        recipient: Pubkey,
        amount: int,
        output_tree: Optional[TreeDescriptor] = None,
    ) -> AssembledInstruction:
        """Compress amount lamports from payer into a new leaf owned by recipient.

        Without output_tree a state tree is picked from config.state_trees.
        """
        async def steps():
            _require_amount(amount)
            tree = self._output_tree(output_tree)
            self.selection = Selection(leaves=(), total=0, change=0)
            bundle = await self._prove(())
            self._advance(OperationState.PACKING)
            self.packed = pack(
                self._fixed(
                    FixedAccount(payer, is_signer=True, is_writable=True),
                    FixedAccount(recipient),
                    FixedAccount(self.config.sol_pool, is_writable=True),
                ),
                inputs=(),
                root_indices=(),
                outputs=[OutputLeaf(owner=recipient, value=amount)],
                output_tree=tree,
            )
            data = encode_invoke(
                self.config.invoke_discriminator, bundle.proof, self.packed,
                compress_or_decompress=amount, is_compress=True,
            )
            return self._finish(self.config.system_program, data, self.packed, "move_in")

        return await self._run(steps)

    async def move_out(
        self, payer: Pubkey, owner: Pubkey, recipient: Pubkey, amount: int
    ) -> AssembledInstruction:
        """Decompress amount lamports of owner's leaves to recipient's ledger account."""
        async def steps():
            _require_amount(amount)
            leaves = await self._select(owner, amount)
            bundle = await self._prove(leaves)
            self._advance(OperationState.PACKING)
            outputs = []
            if self.selection.needs_change:
                outputs.append(OutputLeaf(owner=owner, value=self.selection.change))
            self.packed = pack(
                self._fixed(
                    FixedAccount(payer, is_signer=True, is_writable=True),
                    FixedAccount(owner, is_signer=True),
                    FixedAccount(recipient, is_writable=True),
                    FixedAccount(self.config.sol_pool, is_writable=True),
                ),
                inputs=leaves,
                root_indices=self.root_indices(),
                outputs=outputs,
            )
            data = encode_invoke(
                self.config.invoke_discriminator, bundle.proof, self.packed,
                compress_or_decompress=amount, is_compress=False,
            )
            return self._finish(self.config.system_program, data, self.packed, "move_out")

        return await self._run(steps)

    async def move_between(
        self, payer: Pubkey, owner: Pubkey, recipient: Pubkey, amount: int
    ) -> AssembledInstruction:
        """Transfer amount lamports between compressed owners."""
        async def steps():
            _require_amount(amount)
            leaves = await self._select(owner, amount)
            bundle = await self._prove(leaves)
            self._advance(OperationState.PACKING)
            outputs = []
            if self.selection.needs_change:
                outputs.append(OutputLeaf(owner=owner, value=self.selection.change))
            outputs.append(OutputLeaf(owner=recipient, value=amount))
            self.packed = pack(
                self._fixed(
                    FixedAccount(payer, is_signer=True, is_writable=True),
                    FixedAccount(owner, is_signer=True),
                    FixedAccount(recipient),
                ),
                inputs=leaves,
                root_indices=self.root_indices(),
                outputs=outputs,
            )
            data = encode_invoke(self.config.invoke_discriminator, bundle.proof, self.packed)
            return self._finish(self.config.system_program, data, self.packed, "move_between")

        return await self._run(steps)

    async def move_tokens(
        self, payer: Pubkey, owner: Pubkey, mint: Pubkey, recipient: Pubkey, amount: int
    ) -> AssembledInstruction:
        """Transfer amount tokens of mint between compressed owners."""
        async def steps():
            _require_amount(amount)
            candidates = await collect_token_leaves(
                self.indexer, owner, mint, amount, self.config.page_size
            )
            self.selection = select_leaves(
                candidates, amount, amount_of=token_amount, max_inputs=self.config.max_inputs
            )
            leaves = tuple(self.selection.leaves)
            bundle = await self._prove(leaves)
            self._advance(OperationState.PACKING)
            outputs = []
            if self.selection.needs_change:
                outputs.append(TokenOutput(owner=owner, amount=self.selection.change))
            outputs.append(TokenOutput(owner=recipient, amount=amount))
            self.packed = pack_tokens(
                self._fixed(
                    FixedAccount(payer, is_signer=True, is_writable=True),
                    FixedAccount(owner, is_signer=True),
                    FixedAccount(recipient),
                    FixedAccount(mint),
                ),
                inputs=leaves,
                root_indices=self.root_indices(),
                outputs=outputs,
            )
            data = encode_token_transfer(
                self.config.token_transfer_discriminator, bundle.proof, mint, self.packed
            )
            return self._finish(self.config.token_program, data, self.packed, "move_tokens")

        return await self._run(steps)

    async def create_account(
        self,
        payer: Pubkey,
        seeds: Sequence[bytes],
        address_tree: TreeDescriptor,
        program_id: Pubkey,
        output_tree: Optional[TreeDescriptor] = None,
        amount: int = 0,
    ) -> AssembledInstruction:
        """Create a compressed account at a new address derived from seeds.

        When amount is positive the payer's leaves fund the new account, any
        change returns to the payer and outputs follow the inputs' tree.
        An unfunded account goes to output_tree, or to a configured state tree.
        """
        async def steps():
            if not address_tree.is_address_tree:
                raise ValueError(f"{address_tree.tree} is not an address tree")
            _require_amount(amount, allow_zero=True)
            tree = self._output_tree(output_tree) if amount == 0 else None

            if address_tree.is_batched:
                seed = derive_address_seed_v2(seeds)
                address = derive_address_v2(seed.to_bytes(), address_tree.tree, program_id)
            else:
                seed = derive_address_seed(seeds, program_id)
                address = derive_address(seed.to_bytes(), address_tree.tree)
            self.address = address

            if amount > 0:
                leaves = await self._select(payer, amount)
            else:
                self.selection = Selection(leaves=(), total=0, change=0)
                leaves = ()
            bundle = await self._prove(leaves, [address])
            self._advance(OperationState.PACKING)
            _, address_roots = bundle.split(len(leaves))

            outputs = []
            if self.selection.needs_change:
                outputs.append(OutputLeaf(owner=payer, value=self.selection.change))
            outputs.append(OutputLeaf(owner=payer, value=amount, address=address))
            self.packed = pack(
                self._fixed(FixedAccount(payer, is_signer=True, is_writable=True)),
                inputs=leaves,
                root_indices=self.root_indices(),
                outputs=outputs,
                output_tree=tree,
                new_addresses=[NewAddress(seed=seed.to_bytes(), address_tree=address_tree)],
                address_root_indices=address_roots,
            )
            data = encode_invoke(self.config.invoke_discriminator, bundle.proof, self.packed)
            return self._finish(self.config.system_program, data, self.packed, "create_account")

        return await self._run(steps)

    # --- Hand-off ---

    async def hand_off(self, broadcaster: Broadcaster) -> str:
        """Pass the assembled instruction to broadcaster for signing and sending."""
        self._require(OperationState.ASSEMBLED)
        try:
            signature = await broadcaster.submit(
                self.instruction.to_instruction(), self.instruction.signers
            )
        except BaseException:
            self.state = OperationState.FAILED
            raise
        self._advance(OperationState.HANDED_OFF)
        self.signature = signature
        logger.info("Handed off operation %#x: %s", id(self), signature)
        return signature
