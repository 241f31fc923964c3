"""Indexer interface and response decoding.

The indexer is an external service. This module only fixes the calls the
pipeline makes and turns its JSON results into the compressed_state model;
transport, authentication and retries belong to the implementation behind
the Indexer protocol.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

from solders.pubkey import Pubkey

from compressed_state.field import FieldElement
from compressed_state.leaf import CompressedLeaf, LeafData, TokenAccountState, TokenData, TokenLeaf
from compressed_state.proof import ValidityProofBundle
from compressed_state.tree_info import TreeDescriptor, TreeType


# --- Pages ---

@dataclass(frozen=True)
class LeafPage:
    """One page of leaves; cursor is None on the last page."""
    items: tuple[CompressedLeaf, ...] = field(default_factory=tuple)
    cursor: Optional[str] = None


@dataclass(frozen=True)
class TokenLeafPage:
    items: tuple[TokenLeaf, ...] = field(default_factory=tuple)
    cursor: Optional[str] = None


# --- Interface ---

class Indexer(Protocol):
    """Calls the pipeline makes against the indexing service."""

    async def list_leaves_by_owner(
        self, owner: Pubkey, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> LeafPage:
        ...

    async def list_token_leaves_by_owner(
        self, owner: Pubkey, mint: Pubkey, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> TokenLeafPage:
        ...

    async def get_validity_proof(
        self, hashes: Sequence[FieldElement], new_addresses: Sequence[FieldElement]
    ) -> ValidityProofBundle:
        """Prove hashes and new addresses; root indices come back in request order.

        Raises StaleRoot when the referenced roots are no longer retained.
        """
        ...


# --- JSON Deserialization ---

def _pubkey(value: str) -> Pubkey:
    return Pubkey.from_string(value)


def _parse_tree(j: dict[str, Any], batched: bool) -> TreeDescriptor:
    """Tree descriptor from a v2 merkleContext or a v1 flat account."""
    if batched:
        ctx = j["merkleContext"]
        tree_type = TreeType(ctx["treeType"]) if "treeType" in ctx else TreeType.STATE_V2
        next_tree = None
        if ctx.get("nextTreeContext"):
            next_tree = _parse_tree({"merkleContext": ctx["nextTreeContext"]}, batched=True)
        return TreeDescriptor(
            tree=_pubkey(ctx["tree"]),
            queue=_pubkey(ctx["queue"]),
            tree_type=tree_type,
            cpi_context=_pubkey(ctx["cpiContext"]) if ctx.get("cpiContext") else None,
            next_tree=next_tree,
        )
    tree = _pubkey(j["tree"])
    queue = _pubkey(j["queue"]) if j.get("queue") else tree
    return TreeDescriptor(tree=tree, queue=queue, tree_type=TreeType.STATE_V1)


def _parse_data(j: Optional[dict[str, Any]]) -> Optional[LeafData]:
    if not j:
        return None
    discriminator = int(j["discriminator"]).to_bytes(8, "little")
    data = bytes.fromhex(j["data"]) if isinstance(j["data"], str) else bytes(j["data"])
    return LeafData(
        discriminator=discriminator,
        data=data,
        data_hash=FieldElement.from_base58(j["dataHash"]).to_bytes(),
    )


def parse_leaf(j: dict[str, Any], batched: bool = True) -> CompressedLeaf:
    """Decode one compressed account item.

    Args:
        j: Account JSON object
        batched: True for the v2 API (nested merkleContext, proveByIndex)
    """
    return CompressedLeaf(
        owner=_pubkey(j["owner"]),
        value=int(j["lamports"]),
        hash=FieldElement.from_base58(j["hash"]),
        tree=_parse_tree(j, batched),
        leaf_index=int(j["leafIndex"]),
        address=FieldElement.from_base58(j["address"]) if j.get("address") else None,
        data=_parse_data(j.get("data")),
        prove_by_index=bool(j.get("proveByIndex", False)) if batched else False,
    )


def parse_token_leaf(j: dict[str, Any], batched: bool = True) -> TokenLeaf:
    """Decode a token account item: {"account": {...}, "tokenData": {...}}."""
    token = j["tokenData"]
    state_name = str(token.get("state", "initialized")).upper()
    state = TokenAccountState.__members__.get(state_name, TokenAccountState.INITIALIZED)
    return TokenLeaf(
        leaf=parse_leaf(j["account"], batched),
        token=TokenData(
            mint=_pubkey(token["mint"]),
            owner=_pubkey(token["owner"]),
            amount=int(token["amount"]),
            state=state,
            delegate=_pubkey(token["delegate"]) if token.get("delegate") else None,
            tlv=bytes.fromhex(token["tlv"]) if token.get("tlv") else None,
        ),
    )


def parse_leaf_page(j: dict[str, Any], batched: bool = True) -> LeafPage:
    return LeafPage(
        items=tuple(parse_leaf(item, batched) for item in j.get("items", [])),
        cursor=j.get("cursor"),
    )


def parse_token_leaf_page(j: dict[str, Any], batched: bool = True) -> TokenLeafPage:
    return TokenLeafPage(
        items=tuple(parse_token_leaf(item, batched) for item in j.get("items", [])),
        cursor=j.get("cursor"),
    )
