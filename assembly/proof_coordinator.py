"""Batched validity-proof requests bound positionally to the selected leaves."""

import logging
from dataclasses import dataclass
from typing import Sequence

from compressed_state.errors import (
    AssemblyError,
    PackingInvariantViolation,
    ProofFetchFailed,
)
from compressed_state.field import FieldElement
from compressed_state.proof import ValidityProofBundle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvenLeaf:
    """A selected leaf and the root index its proof was computed against."""
    leaf: object
    root_index: int


class ProofCoordinator:
    """Issues exactly one indexer proof request per operation.

    The request carries the hashes in the order they will later be packed,
    followed by any new addresses. The returned root indices are checked for
    length and kept in that order.
    """

    def __init__(self, indexer):
        self.indexer = indexer

    async def request(
        self,
        hashes: Sequence[FieldElement],
        new_addresses: Sequence[FieldElement] = (),
    ) -> ValidityProofBundle:
        """Fetch one proof covering hashes then new_addresses.

        Raises:
            StaleRoot: propagated unchanged from the indexer; never retried here
            ProofFetchFailed: indexer failure or a response of the wrong length
        """
        hashes = tuple(hashes)
        new_addresses = tuple(new_addresses)
        if not hashes and not new_addresses:
            return ValidityProofBundle.empty()

        logger.debug("Requesting validity proof: %d hashes, %d new addresses", len(hashes), len(new_addresses))
        try:
            bundle = await self.indexer.get_validity_proof(list(hashes), list(new_addresses))
        except AssemblyError:
            raise
        except Exception as exc:
            raise ProofFetchFailed(f"Validity proof request failed: {exc}") from exc

        expected = len(hashes) + len(new_addresses)
        if len(bundle.root_indices) != expected:
            raise ProofFetchFailed(
                f"Validity proof has {len(bundle.root_indices)} root indices, expected {expected}"
            )
        return bundle

    @staticmethod
    def bind(
        leaves: Sequence,
        bundle: ValidityProofBundle,
        n_addresses: int = 0,
    ) -> list[ProvenLeaf]:
        """Pair each leaf with the root index at the same position.

        A length mismatch means the bundle was requested for a different leaf
        set than the one being packed.
        """
        expected = len(leaves) + n_addresses
        if len(bundle.root_indices) != expected:
            raise PackingInvariantViolation(
                f"bundle has {len(bundle.root_indices)} root indices for "
                f"{len(leaves)} leaves and {n_addresses} addresses"
            )
        leaf_roots, _ = bundle.split(len(leaves))
        return [ProvenLeaf(leaf, r) for leaf, r in zip(leaves, leaf_roots)]
