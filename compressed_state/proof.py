"""Validity proof data structures and indexer JSON decoding."""

from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from compressed_state.errors import InvalidFieldElement, ProofFetchFailed
from compressed_state.field import FieldElement

# --- Constants ---

PROOF_A_SIZE = 32
PROOF_B_SIZE = 64
PROOF_C_SIZE = 32
COMPRESSED_PROOF_SIZE = PROOF_A_SIZE + PROOF_B_SIZE + PROOF_C_SIZE


# --- Proof Data Structures ---

@dataclass(frozen=True)
class CompressedProof:
    """Compressed Groth16 proof: points a (G1), b (G2), c (G1)."""
    a: bytes
    b: bytes
    c: bytes

    def __post_init__(self) -> None:
        for name, size in (("a", PROOF_A_SIZE), ("b", PROOF_B_SIZE), ("c", PROOF_C_SIZE)):
            value = bytes(getattr(self, name))
            object.__setattr__(self, name, value)
            if len(value) != size:
                raise ValueError(f"proof.{name} must be {size} bytes, got {len(value)}")

    def to_bytes(self) -> bytes:
        return self.a + self.b + self.c

    @classmethod
    def from_bytes(cls, data: bytes) -> "CompressedProof":
        if len(data) != COMPRESSED_PROOF_SIZE:
            raise ValueError(f"compressed proof must be {COMPRESSED_PROOF_SIZE} bytes, got {len(data)}")
        return cls(
            a=data[:PROOF_A_SIZE],
            b=data[PROOF_A_SIZE:PROOF_A_SIZE + PROOF_B_SIZE],
            c=data[PROOF_A_SIZE + PROOF_B_SIZE:],
        )


@dataclass(frozen=True)
class ValidityProofBundle:
    """Indexer answer to one proof request.

    root_indices (and roots, when the indexer reports them) are positionally
    aligned with the request: one entry per requested hash, then one per
    requested new address.

    Attributes:
        proof: Compressed proof, None when every input is proven by index
        root_indices: Index of the historical root each entry was proven against
        roots: The roots themselves (informational, may be empty)
    """
    proof: Optional[CompressedProof]
    root_indices: tuple[int, ...] = field(default_factory=tuple)
    roots: tuple[FieldElement, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "root_indices", tuple(int(i) for i in self.root_indices))
        object.__setattr__(self, "roots", tuple(self.roots))
        if self.roots and len(self.roots) != len(self.root_indices):
            raise ValueError(
                f"roots ({len(self.roots)}) and root_indices ({len(self.root_indices)}) differ in length"
            )

    def split(self, n_hashes: int) -> tuple[tuple[int, ...], tuple[int, ...]]:
        """Return (root indices for hashes, root indices for new addresses)."""
        return self.root_indices[:n_hashes], self.root_indices[n_hashes:]

    @classmethod
    def empty(cls) -> "ValidityProofBundle":
        return cls(proof=None)


# --- JSON Deserialization ---

def _parse_compressed_proof(j: Optional[dict[str, Any]]) -> Optional[CompressedProof]:
    if j is None:
        return None
    parts = []
    for name, size in (("a", PROOF_A_SIZE), ("b", PROOF_B_SIZE), ("c", PROOF_C_SIZE)):
        values = np.asarray(j[name], dtype=np.int64)
        if values.shape != (size,) or values.min(initial=0) < 0 or values.max(initial=0) > 0xFF:
            raise ValueError(f"compressedProof.{name} must be {size} bytes")
        parts.append(values.astype(np.uint8).tobytes())
    return CompressedProof(*parts)


def parse_validity_proof(j: dict[str, Any]) -> ValidityProofBundle:
    """Decode a getValidityProof result value.

    Accepts the flat layout (rootIndices/roots lists) and the per-item layout
    (accounts[] then addresses[], each carrying its own root index).
    """
    try:
        proof = _parse_compressed_proof(j.get("compressedProof"))

        if "accounts" in j or "addresses" in j:
            accounts = j.get("accounts") or []
            addresses = j.get("addresses") or []
            root_indices = [int(a["rootIndex"]["rootIndex"]) for a in accounts]
            root_indices += [int(a["rootIndex"]) for a in addresses]
            roots = [FieldElement.from_base58(a["root"]) for a in accounts + addresses if "root" in a]
        else:
            root_indices = [int(i) for i in j["rootIndices"]]
            roots = [FieldElement.from_base58(r) for r in j.get("roots", [])]

        return ValidityProofBundle(proof=proof, root_indices=tuple(root_indices), roots=tuple(roots))
    except (KeyError, TypeError, ValueError, OverflowError, InvalidFieldElement) as exc:
        raise ProofFetchFailed(f"Malformed validity proof response: {exc}") from exc
