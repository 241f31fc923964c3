"""Input selection: choose the leaves that cover a requested amount.

The default policy is descending-greedy. Leaves are ordered by amount, largest
first, and taken until the running total reaches the target. For typical
balance distributions (a few large leaves, many small ones) this keeps the
input count low while staying deterministic. It does not guarantee the minimum
possible number of inputs.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, TypeVar

from solders.pubkey import Pubkey

from compressed_state.errors import InsufficientBalance, TooManyInputs

logger = logging.getLogger(__name__)

T = TypeVar("T")

AmountOf = Callable[[T], int]
SelectionPolicy = Callable[[Sequence[T], AmountOf], list[T]]


def leaf_value(leaf) -> int:
    """Amount of a plain compressed leaf."""
    return leaf.value


def token_amount(leaf) -> int:
    """Amount of a compressed token leaf."""
    return leaf.token.amount


# --- Policies ---

def descending_greedy(leaves: Sequence[T], amount_of: AmountOf) -> list[T]:
    """Largest amount first; equal amounts keep their indexer order."""
    order = sorted(range(len(leaves)), key=lambda i: (-amount_of(leaves[i]), i))
    return [leaves[i] for i in order]


# --- Selection ---

@dataclass(frozen=True)
class Selection:
    """Chosen inputs and the surplus that becomes a change leaf.

    Attributes:
        leaves: Selected leaves in consumption order
        total: Sum of the selected amounts
        change: total - target; a change leaf is created only when non-zero
    """
    leaves: tuple
    total: int
    change: int

    @property
    def needs_change(self) -> bool:
        return self.change > 0


def select_leaves(
    leaves: Sequence[T],
    target: int,
    amount_of: AmountOf = leaf_value,
    policy: SelectionPolicy = descending_greedy,
    max_inputs: Optional[int] = None,
) -> Selection:
    """Select a subset of leaves whose amounts sum to at least target.

    Args:
        leaves: Candidate leaves; zero-amount leaves are ignored
        target: Amount to cover
        amount_of: Maps a leaf to its selectable amount
        policy: Orders candidates; leaves are consumed in that order
        max_inputs: Fail when more than this many inputs would be needed

    Raises:
        InsufficientBalance: total available is below target
        TooManyInputs: covering target needs more than max_inputs leaves
    """
    if target < 0:
        raise ValueError(f"target cannot be negative, got {target}")
    if target == 0:
        return Selection(leaves=(), total=0, change=0)

    candidates = [leaf for leaf in leaves if amount_of(leaf) > 0]
    available = sum(amount_of(leaf) for leaf in candidates)
    if available < target:
        raise InsufficientBalance(required=target, available=available)

    selected = []
    total = 0
    for leaf in policy(candidates, amount_of):
        if total >= target:
            break
        selected.append(leaf)
        total += amount_of(leaf)

    if max_inputs is not None and len(selected) > max_inputs:
        raise TooManyInputs(needed=len(selected), limit=max_inputs)

    return Selection(leaves=tuple(selected), total=total, change=total - target)


# --- Paging ---

async def _collect(fetch_page, target: int, amount_of: AmountOf, page_size: int) -> list:
    collected = []
    running = 0
    cursor = None
    pages = 0
    while True:
        page = await fetch_page(cursor, page_size)
        pages += 1
        for leaf in page.items:
            amount = amount_of(leaf)
            if amount > 0:
                collected.append(leaf)
                running += amount
        cursor = page.cursor
        if running >= target or cursor is None:
            break
    logger.debug("Collected %d leaves over %d page(s), running total %d", len(collected), pages, running)
    return collected


async def collect_leaves(indexer, owner: Pubkey, target: int, page_size: int) -> list:
    """Page through an owner's leaves until their total covers target.

    Stops as soon as the running total of positive-value leaves reaches target
    or the indexer has no further pages. The caller still runs select_leaves,
    which raises InsufficientBalance when the collected total falls short.
    """
    async def fetch(cursor, limit):
        return await indexer.list_leaves_by_owner(owner, cursor=cursor, limit=limit)

    return await _collect(fetch, target, leaf_value, page_size)


async def collect_token_leaves(indexer, owner: Pubkey, mint: Pubkey, target: int, page_size: int) -> list:
    """Token counterpart of collect_leaves, restricted to one mint."""
    async def fetch(cursor, limit):
        return await indexer.list_token_leaves_by_owner(owner, mint, cursor=cursor, limit=limit)

    return await _collect(fetch, target, token_amount, page_size)
