"""BN254 scalar field and the canonical 32-byte field element.

Uses galois for field arithmetic. BN254 is the field type; FieldElement is the
immutable big-endian encoding that leaf hashes, addresses and roots travel in.

The field is built with its known generator and verification disabled so that
importing this module does not factor p - 1.
"""

from dataclasses import dataclass
from typing import Union

import galois
from solders.pubkey import Pubkey

from compressed_state.errors import InvalidFieldElement

# --- Field Construction ---

MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617
FIELD_ELEMENT_SIZE = 32

BN254 = galois.GF(MODULUS, primitive_element=5, verify=False)
"""Scalar field of the BN254 curve."""

# Address trees only accept values below this bound (2^248 - 1).
HIGHEST_ADDRESS_PLUS_ONE = 452312848583266388373324160190187140051835877600158453279131187530910662655


def _to_field(value: int):
    """Value as a BN254 scalar; InvalidFieldElement outside 0 <= value < MODULUS."""
    try:
        return BN254(value)
    except ValueError as exc:
        raise InvalidFieldElement(f"{value} is not a BN254 scalar") from exc


def is_canonical(data: bytes) -> bool:
    """True when data is 32 bytes whose big-endian value is below the modulus."""
    return len(data) == FIELD_ELEMENT_SIZE and int.from_bytes(data, "big") < MODULUS


# --- Field Element ---

@dataclass(frozen=True)
class FieldElement:
    """Canonical BN254 scalar as 32 big-endian bytes.

    Construction validates the value through BN254; an instance is always in range.
    Equality and hashing compare the raw bytes.
    """
    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, bytes):
            object.__setattr__(self, "raw", bytes(self.raw))
        if len(self.raw) != FIELD_ELEMENT_SIZE:
            raise InvalidFieldElement(
                f"field element must be exactly {FIELD_ELEMENT_SIZE} bytes, got {len(self.raw)}"
            )
        _to_field(int.from_bytes(self.raw, "big"))

    # --- Constructors ---

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray, list[int]]) -> "FieldElement":
        """Build from 32 big-endian bytes."""
        try:
            raw = bytes(data)
        except (TypeError, ValueError) as exc:
            raise InvalidFieldElement(f"cannot interpret {type(data).__name__} as bytes") from exc
        return cls(raw)

    @classmethod
    def from_int(cls, value: int) -> "FieldElement":
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidFieldElement(f"expected int, got {type(value).__name__}")
        return cls.from_field(_to_field(value))

    @classmethod
    def from_pubkey(cls, pubkey: Pubkey) -> "FieldElement":
        """Reinterpret a ledger public key; fails if its bytes are not canonical."""
        return cls(bytes(pubkey))

    @classmethod
    def from_base58(cls, text: str) -> "FieldElement":
        try:
            pubkey = Pubkey.from_string(text)
        except ValueError as exc:
            raise InvalidFieldElement(f"invalid base58 field element: {text!r}") from exc
        return cls.from_pubkey(pubkey)

    @classmethod
    def from_field(cls, element) -> "FieldElement":
        """Build from a scalar of the galois BN254 field."""
        return cls(int(element).to_bytes(FIELD_ELEMENT_SIZE, "big"))

    @classmethod
    def zero(cls) -> "FieldElement":
        return cls(bytes(FIELD_ELEMENT_SIZE))

    # --- Accessors ---

    def to_bytes(self) -> bytes:
        return self.raw

    def to_int(self) -> int:
        return int.from_bytes(self.raw, "big")

    def to_field(self):
        """Return the value as an element of the galois BN254 field."""
        return BN254(self.to_int())

    def to_pubkey(self) -> Pubkey:
        return Pubkey(self.raw)

    def to_base58(self) -> str:
        return str(self.to_pubkey())

    @property
    def is_zero(self) -> bool:
        return not any(self.raw)

    def __repr__(self) -> str:
        return f"FieldElement({self.to_base58()})"
