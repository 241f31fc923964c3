"""Error taxonomy for selection, proving, packing and encoding.

Validation errors are raised synchronously, before any indexer call. Errors
coming back from the indexer are surfaced typed and unmodified so that a caller
can tell a retryable failure from one that requires restarting the operation.
"""


class AssemblyError(Exception):
    """Base class for every error raised by the assembly pipeline."""


class InvalidFieldElement(AssemblyError, ValueError):
    """Value is not a canonical BN254 scalar (wrong length, negative or >= modulus)."""


class InsufficientBalance(AssemblyError):
    """Available leaves cannot cover the requested amount."""

    def __init__(self, required: int, available: int):
        super().__init__(f"Insufficient balance: required {required}, available {available}")
        self.required = required
        self.available = available


class TooManyInputs(AssemblyError):
    """Covering the amount needs more input leaves than one instruction accepts."""

    def __init__(self, needed: int, limit: int):
        super().__init__(f"Selection needs {needed} input accounts, at most {limit} allowed")
        self.needed = needed
        self.limit = limit


class ProofFetchFailed(AssemblyError):
    """Indexer unreachable or returned a malformed validity proof."""


class StaleRoot(AssemblyError):
    """The tree root a proof was computed against is no longer retained."""


class NoStateTreeAvailable(AssemblyError):
    """No state tree is available to append output leaves to."""


class PackingInvariantViolation(AssemblyError, AssertionError):
    """Index table or packed reference is inconsistent. Always a programming defect."""


class EncodingOverflow(AssemblyError, OverflowError):
    """Argument does not fit its fixed-width field."""


def requires_restart(exc: BaseException) -> bool:
    """Return True when the whole operation must restart from selection.

    A stale root invalidates the selected snapshot and its packing. Other
    failures (indexer lag, malformed response) can be retried as a single call.
    """
    return isinstance(exc, StaleRoot)


__all__ = [
    "AssemblyError",
    "InvalidFieldElement",
    "InsufficientBalance",
    "TooManyInputs",
    "ProofFetchFailed",
    "StaleRoot",
    "NoStateTreeAvailable",
    "PackingInvariantViolation",
    "EncodingOverflow",
    "requires_restart",
]
