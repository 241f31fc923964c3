"""Tests for input selection and indexer paging."""

import asyncio
import logging

import pytest

from assembly.selection import (
    collect_leaves,
    collect_token_leaves,
    descending_greedy,
    leaf_value,
    select_leaves,
    token_amount,
)
from compressed_state.errors import InsufficientBalance, TooManyInputs
from tests.fakes import FakeIndexer, key, make_leaf, make_token_leaf

OWNER = key(1)
MINT = key(9)


def leaves_with(values, tree):
    return [make_leaf(OWNER, v, tree, i) for i, v in enumerate(values)]


class TestSelectLeaves:
    """Tests for descending-greedy selection."""

    def test_largest_first_stops_early(self, state_tree_v1) -> None:
        """[5, 3, 2] for 4 takes only the 5 and leaves change 1."""
        leaves = leaves_with([5, 3, 2], state_tree_v1)
        selection = select_leaves(leaves, 4)
        assert [leaf.value for leaf in selection.leaves] == [5]
        assert selection.total == 5
        assert selection.change == 1
        assert selection.needs_change

    def test_accumulates_until_covered(self, state_tree_v1) -> None:
        leaves = leaves_with([2, 5, 3], state_tree_v1)
        selection = select_leaves(leaves, 7)
        assert [leaf.value for leaf in selection.leaves] == [5, 3]
        assert selection.change == 1

    def test_exact_match_has_no_change(self, state_tree_v1) -> None:
        leaves = leaves_with([1_000_000_000], state_tree_v1)
        selection = select_leaves(leaves, 1_000_000_000)
        assert len(selection.leaves) == 1
        assert selection.change == 0
        assert not selection.needs_change

    def test_sum_covers_target(self, state_tree_v1) -> None:
        leaves = leaves_with([7, 1, 4, 9, 3, 3, 8], state_tree_v1)
        for target in range(1, sum(leaf.value for leaf in leaves) + 1):
            selection = select_leaves(leaves, target)
            assert selection.total >= target
            assert selection.total == sum(leaf.value for leaf in selection.leaves)
            assert selection.change == selection.total - target

    def test_zero_target_selects_nothing(self, state_tree_v1) -> None:
        selection = select_leaves(leaves_with([5], state_tree_v1), 0)
        assert selection.leaves == ()
        assert selection.change == 0

    def test_negative_target_rejected(self, state_tree_v1) -> None:
        with pytest.raises(ValueError):
            select_leaves(leaves_with([5], state_tree_v1), -1)

    def test_insufficient_balance(self, state_tree_v1) -> None:
        """Total 6 cannot cover 10."""
        with pytest.raises(InsufficientBalance) as info:
            select_leaves(leaves_with([3, 2, 1], state_tree_v1), 10)
        assert info.value.required == 10
        assert info.value.available == 6

    def test_zero_value_leaves_ignored(self, state_tree_v1) -> None:
        leaves = leaves_with([0, 4, 0], state_tree_v1)
        selection = select_leaves(leaves, 4)
        assert [leaf.leaf_index for leaf in selection.leaves] == [1]

    def test_ties_keep_indexer_order(self, state_tree_v1) -> None:
        leaves = leaves_with([3, 3, 3], state_tree_v1)
        ordered = descending_greedy(leaves, leaf_value)
        assert [leaf.leaf_index for leaf in ordered] == [0, 1, 2]

    def test_max_inputs(self, state_tree_v1) -> None:
        leaves = leaves_with([1, 1, 1, 1], state_tree_v1)
        with pytest.raises(TooManyInputs) as info:
            select_leaves(leaves, 3, max_inputs=2)
        assert info.value.needed == 3
        assert info.value.limit == 2

    def test_custom_policy(self, state_tree_v1) -> None:
        """Ascending order is accepted as a policy."""
        def ascending(leaves, amount_of):
            return sorted(leaves, key=amount_of)

        leaves = leaves_with([5, 3, 2], state_tree_v1)
        selection = select_leaves(leaves, 4, policy=ascending)
        assert [leaf.value for leaf in selection.leaves] == [2, 3]

    def test_token_amounts(self, state_tree_v1) -> None:
        tokens = [make_token_leaf(OWNER, MINT, a, state_tree_v1, i) for i, a in enumerate([10, 40, 25])]
        selection = select_leaves(tokens, 50, amount_of=token_amount)
        assert [t.amount for t in selection.leaves] == [40, 25]
        assert selection.change == 15


class TestCollectLeaves:
    """Tests for paging the indexer until the target is covered."""

    def test_stops_once_covered(self, state_tree_v1) -> None:
        indexer = FakeIndexer(leaves_with([10, 10, 10, 10, 10], state_tree_v1))
        collected = asyncio.run(collect_leaves(indexer, OWNER, 15, page_size=2))
        assert len(collected) == 2
        assert len(indexer.page_calls) == 1

    def test_pages_until_exhausted(self, state_tree_v1) -> None:
        indexer = FakeIndexer(leaves_with([1, 1, 1, 1, 1], state_tree_v1))
        collected = asyncio.run(collect_leaves(indexer, OWNER, 100, page_size=2))
        assert len(collected) == 5
        assert [c[1] for c in indexer.page_calls] == [None, "2", "4"]

    def test_log_arguments_are_lazy(self, state_tree_v1, caplog) -> None:
        indexer = FakeIndexer(leaves_with([10, 10], state_tree_v1))
        with caplog.at_level(logging.DEBUG, logger="assembly.selection"):
            asyncio.run(collect_leaves(indexer, OWNER, 15, page_size=10))
        record = caplog.records[-1]
        assert record.args == (2, 1, 20)
        assert record.getMessage() == "Collected 2 leaves over 1 page(s), running total 20"

    def test_short_pages_keep_paging(self, state_tree_v1) -> None:
        """A page shorter than the requested limit is not the last page while a cursor remains."""
        indexer = FakeIndexer(leaves_with([10, 10, 10, 10, 10], state_tree_v1), page_cap=2)
        collected = asyncio.run(collect_leaves(indexer, OWNER, 40, page_size=1000))
        assert len(collected) == 4
        assert [c[1] for c in indexer.page_calls] == [None, "2"]

    def test_skips_zero_value(self, state_tree_v1) -> None:
        indexer = FakeIndexer(leaves_with([0, 3, 0, 4], state_tree_v1))
        collected = asyncio.run(collect_leaves(indexer, OWNER, 100, page_size=10))
        assert [leaf.value for leaf in collected] == [3, 4]

    def test_only_owner_leaves(self, state_tree_v1) -> None:
        other = make_leaf(key(2), 50, state_tree_v1, 9)
        indexer = FakeIndexer(leaves_with([5], state_tree_v1) + [other])
        collected = asyncio.run(collect_leaves(indexer, OWNER, 10, page_size=10))
        assert [leaf.owner for leaf in collected] == [OWNER]

    def test_token_leaves_by_mint(self, state_tree_v1) -> None:
        tokens = [
            make_token_leaf(OWNER, MINT, 5, state_tree_v1, 0),
            make_token_leaf(OWNER, key(8), 50, state_tree_v1, 1),
            make_token_leaf(OWNER, MINT, 7, state_tree_v1, 2),
        ]
        indexer = FakeIndexer(token_leaves=tokens)
        collected = asyncio.run(collect_token_leaves(indexer, OWNER, MINT, 100, page_size=10))
        assert [t.amount for t in collected] == [5, 7]
