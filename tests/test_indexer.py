"""Tests for decoding indexer responses."""

import pytest

from assembly.indexer import parse_leaf, parse_leaf_page, parse_token_leaf, parse_token_leaf_page
from compressed_state.field import FieldElement
from compressed_state.leaf import TokenAccountState
from compressed_state.tree_info import TreeType
from tests.fakes import key

HASH = FieldElement.from_int(12345)
ADDRESS = FieldElement.from_int(678)


def v2_account(**overrides):
    account = {
        "owner": str(key(1)),
        "lamports": 1000,
        "hash": HASH.to_base58(),
        "leafIndex": 17,
        "address": None,
        "data": None,
        "proveByIndex": True,
        "merkleContext": {
            "tree": str(key(11)),
            "queue": str(key(12)),
            "treeType": 3,
            "cpiContext": str(key(13)),
        },
    }
    account.update(overrides)
    return account


class TestParseLeaf:
    """Tests for single account items."""

    def test_v2_account(self) -> None:
        leaf = parse_leaf(v2_account())
        assert leaf.owner == key(1)
        assert leaf.value == 1000
        assert leaf.hash == HASH
        assert leaf.leaf_index == 17
        assert leaf.prove_by_index
        assert leaf.tree.tree == key(11)
        assert leaf.tree.queue == key(12)
        assert leaf.tree.tree_type == TreeType.STATE_V2
        assert leaf.tree.cpi_context == key(13)
        assert leaf.address is None

    def test_v1_account(self) -> None:
        leaf = parse_leaf({
            "owner": str(key(1)),
            "lamports": 5,
            "hash": HASH.to_base58(),
            "leafIndex": 0,
            "tree": str(key(21)),
            "queue": str(key(22)),
            "proveByIndex": True,
        }, batched=False)
        assert leaf.tree.tree_type == TreeType.STATE_V1
        assert leaf.tree.queue == key(22)
        assert not leaf.prove_by_index

    def test_next_tree_context(self) -> None:
        ctx = v2_account()["merkleContext"]
        ctx["nextTreeContext"] = {"tree": str(key(31)), "queue": str(key(32)), "treeType": 3}
        leaf = parse_leaf(v2_account(merkleContext=ctx))
        assert leaf.tree.active().tree == key(31)

    def test_address_and_data(self) -> None:
        leaf = parse_leaf(v2_account(
            address=ADDRESS.to_base58(),
            data={"discriminator": 2, "data": "0a0b", "dataHash": HASH.to_base58()},
        ))
        assert leaf.address == ADDRESS
        assert leaf.data.discriminator == b"\x02" + bytes(7)
        assert leaf.data.data == b"\x0a\x0b"
        assert leaf.data.data_hash == HASH.to_bytes()

    def test_missing_field(self) -> None:
        account = v2_account()
        del account["hash"]
        with pytest.raises(KeyError):
            parse_leaf(account)


class TestParseTokenLeaf:
    def test_token_item(self) -> None:
        token = parse_token_leaf({
            "account": v2_account(),
            "tokenData": {
                "mint": str(key(9)),
                "owner": str(key(1)),
                "amount": 250,
                "delegate": str(key(4)),
                "state": "frozen",
            },
        })
        assert token.amount == 250
        assert token.hash == HASH
        assert token.token.mint == key(9)
        assert token.token.delegate == key(4)
        assert token.token.state == TokenAccountState.FROZEN

    def test_unknown_state_defaults_to_initialized(self) -> None:
        token = parse_token_leaf({
            "account": v2_account(),
            "tokenData": {"mint": str(key(9)), "owner": str(key(1)), "amount": 1, "state": "other"},
        })
        assert token.token.state == TokenAccountState.INITIALIZED


class TestParsePages:
    def test_cursor(self) -> None:
        page = parse_leaf_page({"items": [v2_account(), v2_account(leafIndex=18)], "cursor": "abc"})
        assert [leaf.leaf_index for leaf in page.items] == [17, 18]
        assert page.cursor == "abc"

    def test_last_page(self) -> None:
        page = parse_token_leaf_page({"items": [], "cursor": None})
        assert page.items == ()
        assert page.cursor is None
