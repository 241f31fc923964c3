"""Tests for instruction payload layouts."""

import struct

import pytest
from solders.instruction import Instruction

from assembly.config import INVOKE_DISCRIMINATOR, TOKEN_TRANSFER_DISCRIMINATOR, AssemblyConfig
from assembly.instruction import MerkleContextLayout, assemble, encode_invoke, encode_token_transfer, frame
from assembly.packing import FixedAccount, NewAddress, pack, pack_tokens
from compressed_state.errors import EncodingOverflow
from compressed_state.field import FieldElement
from compressed_state.leaf import LeafData, OutputLeaf, TokenOutput
from tests.fakes import PROOF, key, make_leaf, make_token_leaf

PAYER = key(1)
RECIPIENT = key(2)
MINT = key(3)


def body_of(data: bytes, discriminator: bytes) -> bytes:
    assert data[:8] == discriminator
    (length,) = struct.unpack("<I", data[8:12])
    assert length == len(data) - 12
    return data[12:]


class TestFrame:
    def test_prefix(self) -> None:
        data = frame(INVOKE_DISCRIMINATOR, b"xyz")
        assert data == INVOKE_DISCRIMINATOR + b"\x03\x00\x00\x00xyz"


class TestInvokeLayout:
    """Byte layout of the system program invoke payload."""

    def test_compress_output_only(self, state_tree_v1) -> None:
        packed = pack([FixedAccount(PAYER, True, True)], [], [], [OutputLeaf(RECIPIENT, 5)],
                      output_tree=state_tree_v1)
        data = encode_invoke(INVOKE_DISCRIMINATOR, None, packed, compress_or_decompress=5, is_compress=True)
        expected = (
            b"\x00"                                     # no proof
            + b"\x00\x00\x00\x00"                       # no inputs
            + b"\x01\x00\x00\x00"                       # one output
            + bytes(RECIPIENT) + struct.pack("<Q", 5)   # owner, lamports
            + b"\x00\x00"                               # no address, no data
            + b"\x01"                                   # tree index
            + b"\x00"                                   # no relay fee
            + b"\x00\x00\x00\x00"                       # no new addresses
            + b"\x01" + struct.pack("<Q", 5)            # compress amount
            + b"\x01"                                   # is_compress
        )
        assert body_of(data, INVOKE_DISCRIMINATOR) == expected

    def test_input_record(self, state_tree_v1) -> None:
        leaf = make_leaf(PAYER, 9, state_tree_v1, 300, prove_by_index=True)
        packed = pack([FixedAccount(PAYER, True, True)], [leaf], [513], [])
        body = body_of(encode_invoke(INVOKE_DISCRIMINATOR, PROOF, packed), INVOKE_DISCRIMINATOR)
        assert body[0] == 1
        assert body[1:129] == PROOF.to_bytes()
        assert body[129:133] == b"\x01\x00\x00\x00"
        record = body[133:133 + 52]
        assert record[:32] == bytes(PAYER)
        assert record[32:40] == struct.pack("<Q", 9)
        assert record[40:42] == b"\x00\x00"
        assert record[42:49] == bytes([1, 2]) + struct.pack("<I", 300) + b"\x01"
        assert record[49:51] == struct.pack("<H", 513)
        assert record[51] == 0
        assert len(body) == 133 + 52 + 4 + 1 + 4 + 1 + 1

    def test_address_and_data(self, state_tree_v1, address_tree) -> None:
        address = FieldElement.from_int(77)
        data = LeafData(discriminator=bytes(range(8)), data=b"payload", data_hash=bytes(32))
        packed = pack(
            [FixedAccount(PAYER, True, True)], [], [],
            [OutputLeaf(PAYER, 0, address=address, data=data)],
            output_tree=state_tree_v1,
            new_addresses=[NewAddress(seed=bytes([5]) * 32, address_tree=address_tree)],
            address_root_indices=[4],
        )
        body = body_of(encode_invoke(INVOKE_DISCRIMINATOR, None, packed), INVOKE_DISCRIMINATOR)
        output = body[9:]
        assert output[40] == 1
        assert output[41:73] == address.to_bytes()
        assert output[73] == 1
        assert output[74:82] == bytes(range(8))
        assert output[82:86] == b"\x07\x00\x00\x00"
        assert output[86:93] == b"payload"
        assert output[93:125] == bytes(32)
        assert output[125] == 1
        rest = output[126:]
        assert rest[0] == 0
        assert rest[1:5] == b"\x01\x00\x00\x00"
        assert rest[5:37] == bytes([5]) * 32
        assert rest[37:41] == bytes([2, 3]) + struct.pack("<H", 4)


class TestTokenLayout:
    """Byte layout of the token transfer payload."""

    def test_transfer(self, state_tree_v1) -> None:
        token = make_token_leaf(PAYER, MINT, 50, state_tree_v1, 6)
        packed = pack_tokens([FixedAccount(PAYER, True, True)], [token], [3], [TokenOutput(RECIPIENT, 50)])
        data = encode_token_transfer(TOKEN_TRANSFER_DISCRIMINATOR, PROOF, MINT, packed)
        body = body_of(data, TOKEN_TRANSFER_DISCRIMINATOR)
        assert len(body) == 237
        assert body[129:161] == bytes(MINT)
        assert body[161] == 0
        token_input = body[166:186]
        assert token_input == (
            struct.pack("<Q", 50) + b"\x00" + bytes([1, 2]) + struct.pack("<I", 6) + b"\x00"
            + struct.pack("<H", 3) + b"\x00\x00"
        )
        token_output = body[190:233]
        assert token_output == bytes(RECIPIENT) + struct.pack("<Q", 50) + b"\x00" + b"\x01" + b"\x00"
        assert body[233:] == b"\x00\x00\x00\x00"


class TestAssemble:
    def test_metas_match_table(self, state_tree_v1) -> None:
        packed = pack([FixedAccount(PAYER, True, True), FixedAccount(RECIPIENT)], [], [],
                      [OutputLeaf(RECIPIENT, 5)], output_tree=state_tree_v1)
        config = AssemblyConfig.default()
        assembled = assemble(config.system_program, b"data", packed)
        assert [m.pubkey for m in assembled.account_metas] == packed.table.keys
        assert assembled.signers == (PAYER,)
        ix = assembled.to_instruction()
        assert isinstance(ix, Instruction)
        assert ix.program_id == config.system_program
        assert bytes(ix.data) == b"data"
        assert list(ix.accounts) == list(assembled.account_metas)


class TestEncodingErrors:
    """Values that do not fit their field width."""

    def test_output_value_overflow(self, state_tree_v1) -> None:
        packed = pack([FixedAccount(PAYER, True, True)], [], [], [OutputLeaf(RECIPIENT, 2**64)],
                      output_tree=state_tree_v1)
        with pytest.raises(EncodingOverflow):
            encode_invoke(INVOKE_DISCRIMINATOR, None, packed)

    def test_compress_amount_overflow(self, state_tree_v1) -> None:
        packed = pack([FixedAccount(PAYER, True, True)], [], [], [OutputLeaf(RECIPIENT, 1)],
                      output_tree=state_tree_v1)
        with pytest.raises(OverflowError):
            encode_invoke(INVOKE_DISCRIMINATOR, None, packed, compress_or_decompress=-1, is_compress=True)

    def test_discriminator_length(self) -> None:
        with pytest.raises(EncodingOverflow):
            frame(b"\x01" * 7, b"")

    def test_merkle_context_layout(self) -> None:
        data = MerkleContextLayout.build({
            "tree_index": 1, "queue_index": 2, "leaf_index": 0x01020304, "prove_by_index": True,
        })
        assert data == bytes([1, 2, 4, 3, 2, 1, 1])
