"""Address derivation for compressed accounts with a persistent address.

Hashes are keccak256 truncated into the BN254 field by zeroing the most
significant byte.
"""

from typing import Iterable, Optional

from eth_utils import keccak
from solders.pubkey import Pubkey

from compressed_state.field import FIELD_ELEMENT_SIZE, FieldElement, is_canonical

BUMP_SEED = b"\xff"


def _truncate(digest: bytes) -> bytes:
    return b"\x00" + digest[1:]


def hashv_to_field_size(parts: Iterable[bytes]) -> FieldElement:
    """keccak256 over the concatenated parts, truncated into the field."""
    return FieldElement(_truncate(keccak(b"".join(bytes(p) for p in parts))))


def hashv_to_field_size_with_bump(parts: Iterable[bytes]) -> FieldElement:
    """Same as hashv_to_field_size with a trailing 0xFF bump byte."""
    return FieldElement(_truncate(keccak(b"".join(bytes(p) for p in parts) + BUMP_SEED)))


def hash_to_field_size(data: bytes) -> Optional[tuple[FieldElement, int]]:
    """Search bump seeds 255..0 for a truncated hash that is canonical.

    Returns (element, bump), or None when no bump works.
    """
    for bump in range(255, -1, -1):
        candidate = _truncate(keccak(bytes(data) + bytes([bump])))
        if is_canonical(candidate):
            return FieldElement(candidate), bump
    return None


# --- Seeds ---

def derive_address_seed(seeds: Iterable[bytes], program_id: Pubkey) -> FieldElement:
    """Address seed bound to the program that owns the account (v1 trees)."""
    return hashv_to_field_size([bytes(program_id), *seeds])


def derive_address_seed_v2(seeds: Iterable[bytes]) -> FieldElement:
    """Address seed for batched address trees; the program is bound at derivation."""
    return hashv_to_field_size_with_bump(seeds)


# --- Addresses ---

def derive_address(seed: bytes, address_tree: Pubkey) -> FieldElement:
    """Address of a compressed account in a v1 address tree."""
    seed = bytes(seed)
    if len(seed) != FIELD_ELEMENT_SIZE:
        raise ValueError(f"seed must be {FIELD_ELEMENT_SIZE} bytes, got {len(seed)}")
    result = hash_to_field_size(bytes(address_tree) + seed)
    if result is None:
        raise ValueError("Failed to derive address")
    return result[0]


def derive_address_v2(address_seed: bytes, address_tree: Pubkey, program_id: Pubkey) -> FieldElement:
    """Address of a compressed account in a batched (v2) address tree."""
    address_seed = bytes(address_seed)
    if len(address_seed) != FIELD_ELEMENT_SIZE:
        raise ValueError(f"address seed must be {FIELD_ELEMENT_SIZE} bytes, got {len(address_seed)}")
    return hashv_to_field_size_with_bump([address_seed, bytes(address_tree), bytes(program_id)])
