"""Assembly configuration: program ids, instruction discriminators and limits."""

import json
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from solders.pubkey import Pubkey

# --- Program Ids ---

LIGHT_SYSTEM_PROGRAM = "SySTEM1eSU2p4BGQfQpimFEWWSC1XDFeun3Nqzz3rT7"
COMPRESSED_TOKEN_PROGRAM = "cTokenmWW8bLPjZEBAUgYy3zKxQZW6VKi7bqNFEVv3m"
ACCOUNT_COMPRESSION_PROGRAM = "compr6CUsB5m2jS4Y3831ztGSTnDpnKJTKS95d64XVq"
NOOP_PROGRAM = "noopb9bkMVfRPU8AsbpTUg8AQkHtKwMYZiFUjNRtMmV"
REGISTERED_PROGRAM_PDA = "35hkDgaAKwMCaxRz2ocSZ6NaUrtKkyNqU6c4RV3tYJRh"
SYSTEM_PROGRAM = "11111111111111111111111111111111"
SOL_POOL_PDA = "CHK57ywWSDncAoRu1F8QgwYJeXuAJyyBYT4LixLXvMZ1"

# Static accounts the system program reads on every invoke.
INVOKE_PROGRAM_ACCOUNTS = (
    REGISTERED_PROGRAM_PDA,
    NOOP_PROGRAM,
    ACCOUNT_COMPRESSION_PROGRAM,
    SYSTEM_PROGRAM,
)

# --- Discriminators ---

INVOKE_DISCRIMINATOR = bytes([26, 16, 169, 7, 21, 202, 242, 25])
TOKEN_TRANSFER_DISCRIMINATOR = bytes([163, 52, 200, 231, 140, 3, 69, 186])

DEFAULT_PAGE_SIZE = 1000

# Account indices are stored as u8 in instruction data.
MAX_PACKED_ACCOUNTS = 256


def _pubkey_list(values: list[str]) -> tuple[Pubkey, ...]:
    return tuple(Pubkey.from_string(v) for v in values)


@dataclass(frozen=True)
class AssemblyConfig:
    """Per-deployment assembly parameters.

    Attributes:
        system_program: Program that executes invoke (move-in/out/between, create)
        token_program: Program that executes token transfers
        invoke_discriminator: 8-byte tag of the invoke instruction
        token_transfer_discriminator: 8-byte tag of the token transfer instruction
        page_size: Leaves requested per indexer page while collecting inputs
        max_inputs: Upper bound on input leaves per instruction (None = unbounded)
        extra_accounts: Read-only accounts appended after the operation's
            participants in every account list (program static accounts)
        sol_pool: Pool account that holds lamports while they are compressed
        state_trees: State tree lookup table contents ([tree, queue, cpi_context]
            triplets, or legacy [tree, cpi_context] pairs); output trees are
            picked from it when an operation is given none
    """
    system_program: Pubkey
    token_program: Pubkey
    invoke_discriminator: bytes = INVOKE_DISCRIMINATOR
    token_transfer_discriminator: bytes = TOKEN_TRANSFER_DISCRIMINATOR
    page_size: int = DEFAULT_PAGE_SIZE
    max_inputs: Optional[int] = None
    extra_accounts: tuple[Pubkey, ...] = field(default_factory=tuple)
    sol_pool: Pubkey = field(default_factory=lambda: Pubkey.from_string(SOL_POOL_PDA))
    state_trees: tuple[Pubkey, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra_accounts", tuple(self.extra_accounts))
        object.__setattr__(self, "state_trees", tuple(self.state_trees))
        for name in ("invoke_discriminator", "token_transfer_discriminator"):
            if len(getattr(self, name)) != 8:
                raise ValueError(f"{name} must be 8 bytes")
        if self.page_size <= 0:
            raise ValueError(f"page_size must be positive, got {self.page_size}")
        if self.max_inputs is not None and self.max_inputs <= 0:
            raise ValueError(f"max_inputs must be positive, got {self.max_inputs}")

    @classmethod
    def from_json(cls, path: str) -> "AssemblyConfig":
        """Load from a JSON file.

        Example JSON structure:
        {
          "systemProgram": "SySTEM1eSU2p4BGQfQpimFEWWSC1XDFeun3Nqzz3rT7",
          "tokenProgram": "cTokenmWW8bLPjZEBAUgYy3zKxQZW6VKi7bqNFEVv3m",
          "pageSize": 500,
          "maxInputs": 8,
          "extraAccounts": [],
          "stateTrees": ["<tree>", "<queue>", "<cpi context>"]
        }
        """
        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AssemblyConfig":
        default = cls.default()
        return cls(
            system_program=Pubkey.from_string(data.get("systemProgram", LIGHT_SYSTEM_PROGRAM)),
            token_program=Pubkey.from_string(data.get("tokenProgram", COMPRESSED_TOKEN_PROGRAM)),
            invoke_discriminator=bytes(data.get("invokeDiscriminator", default.invoke_discriminator)),
            token_transfer_discriminator=bytes(
                data.get("tokenTransferDiscriminator", default.token_transfer_discriminator)
            ),
            page_size=data.get("pageSize", DEFAULT_PAGE_SIZE),
            max_inputs=data.get("maxInputs"),
            extra_accounts=_pubkey_list(data.get("extraAccounts", [])),
            sol_pool=Pubkey.from_string(data.get("solPool", SOL_POOL_PDA)),
            state_trees=_pubkey_list(data.get("stateTrees", [])),
        )

    @classmethod
    def default(cls) -> "AssemblyConfig":
        """Mainnet program ids, no static accounts, no input limit."""
        return cls(
            system_program=Pubkey.from_string(LIGHT_SYSTEM_PROGRAM),
            token_program=Pubkey.from_string(COMPRESSED_TOKEN_PROGRAM),
        )

    def with_program_accounts(self) -> "AssemblyConfig":
        """Copy whose extra accounts are the system program's static accounts."""
        return replace(self, extra_accounts=_pubkey_list(list(INVOKE_PROGRAM_ACCOUNTS)))
