from datetime import datetime, timedelta, timezone
import pytest
from savecore.codec import ArrayBlock, ArrayBlockCodec, BlockKind, Color, Vector2
from savecore.crypto.cipher import Cipher


SAMPLES = {
    BlockKind.BOOL: [True, False, True],
    BlockKind.INT: [0, -7, 2**40],
    BlockKind.DOUBLE: [0.0, -1.5, 3.141592653589793, 1e-300],
    BlockKind.STRING: ["", "plain", "with#hash", "ünïcödé"],
    BlockKind.TIME_SPAN: [timedelta(0), timedelta(days=2, seconds=5, microseconds=7), timedelta(seconds=-3)],
    BlockKind.VECTOR2: [Vector2(0.0, 0.0), Vector2(1.5, -2.25)],
    BlockKind.COLOR: [Color(1.0, 0.5, 0.25, 1.0), Color(0.1, 0.2, 0.3, 0.4)],
    BlockKind.TIMESTAMP: [datetime(2024, 2, 29, 23, 59, 58, 123456), datetime(1999, 1, 1)],
}


@pytest.fixture
def codec():
    return ArrayBlockCodec(Cipher("codec-test-key"))


@pytest.mark.parametrize("encrypt", [False, True])
@pytest.mark.parametrize("kind", list(SAMPLES))
def test_round_trip(codec, kind, encrypt):
    values = SAMPLES[kind]

    block = codec.encode(kind, "values", values, encrypt=encrypt)
    decoded = codec.decode(block, encrypt=encrypt)

    assert decoded.ok
    assert decoded.name == "values"
    assert decoded.values == values

def test_composite_fields_end_with_delimiter(codec):
    block = codec.encode(BlockKind.VECTOR2, "pos", [Vector2(1.0, 2.0)])
    assert block.values == ["1.0#2.0#"]

    block = codec.encode(BlockKind.TIMESTAMP, "when", [datetime(2024, 5, 6, 7, 8, 9, 10)])
    assert block.values == ["2024#5#6#7#8#9#10#"]

def test_encrypted_block_hides_values(codec):
    block = codec.encode(BlockKind.STRING, "flags", ["seenIntro=true"], encrypt=True)

    assert block.encrypted
    assert block.name != "flags"
    assert block.values[0] != "seenIntro=true"

def test_wrong_field_count_fails_closed(codec):
    block = ArrayBlock("pos", BlockKind.VECTOR2, ["1.0#2.0#", "1.0#", "1.0#2.0#3.0#", "1.0#2.0"])

    decoded = codec.decode(block)

    assert decoded.values == [Vector2(1.0, 2.0), Vector2(), Vector2(), Vector2()]
    assert decoded.failed == [1, 2, 3]
    assert not decoded.ok

def test_unparsable_field_fails_closed(codec):
    block = ArrayBlock("c", BlockKind.COLOR, ["1.0#x#0.0#1.0#"])
    decoded = codec.decode(block)
    assert decoded.values == [Color(0.0, 0.0, 0.0, 0.0)]
    assert decoded.failed == [0]

@pytest.mark.parametrize("kind,raw,default", [
    (BlockKind.BOOL, "yes", False),
    (BlockKind.INT, "1.5", 0),
    (BlockKind.DOUBLE, "abc", 0.0),
    (BlockKind.TIME_SPAN, "", timedelta(0)),
    (BlockKind.TIMESTAMP, "2024#13#1#0#0#0#0#", datetime.min),
])
def test_bad_scalar_returns_default(codec, kind, raw, default):
    decoded = codec.decode(ArrayBlock("v", kind, [raw]))
    assert decoded.values == [default]
    assert decoded.failed == [0]

def test_encrypted_then_decoded_without_encryption_fails_closed(codec):
    block = codec.encode(BlockKind.STRING, "flags", ["seenIntro=true", "A=1"], encrypt=True)

    decoded = codec.decode(block, encrypt=False)

    assert decoded.values == ["", ""]
    assert decoded.failed == [0, 1]
    assert decoded.name == ""
    assert "seenIntro=true" not in decoded.values

def test_plain_block_decoded_with_encryption_fails_closed(codec):
    block = codec.encode(BlockKind.BOOL, "b", [True], encrypt=False)
    decoded = codec.decode(block, encrypt=True)
    assert decoded.values == [False]
    assert not decoded.ok

def test_tampered_ciphertext_fails_closed(codec):
    block = codec.encode(BlockKind.DOUBLE, "d", [1.5, 2.5], encrypt=True)
    block.values[1] = "not*base64"

    decoded = codec.decode(block, encrypt=True)

    assert decoded.values == [1.5, 0.0]
    assert decoded.failed == [1]

def test_encrypt_without_cipher_rejected():
    with pytest.raises(ValueError):
        ArrayBlockCodec().encode(BlockKind.BOOL, "b", [True], encrypt=True)

def test_encrypted_block_without_cipher_fails_closed(codec):
    block = codec.encode(BlockKind.INT, "i", [5], encrypt=True)
    decoded = ArrayBlockCodec().decode(block, encrypt=True)
    assert decoded.values == [0]

@pytest.mark.parametrize("encrypt", [False, True])
def test_pairs_round_trip(codec, encrypt):
    mapping = {"deaths": 3, "keys": 0, "gold": 250}

    keys, values = codec.encode_pairs(BlockKind.INT, "int", mapping, encrypt)

    assert codec.decode_pairs(keys, values, encrypt) == mapping

def test_pairs_with_mismatched_lengths_use_shorter(codec):
    keys = ArrayBlock("k", BlockKind.STRING, ["a", "b", "c"])
    values = ArrayBlock("v", BlockKind.INT, ["1", "2"])

    assert codec.decode_pairs(keys, values) == {"a": 1, "b": 2}

def test_pairs_skip_empty_keys(codec):
    keys = ArrayBlock("k", BlockKind.STRING, ["a", "", "c"])
    values = ArrayBlock("v", BlockKind.BOOL, ["true", "true", "false"])

    assert codec.decode_pairs(keys, values) == {"a": True, "c": False}

def test_block_dict_round_trip(codec):
    block = codec.encode(BlockKind.COLOR, "ui", [Color(1.0, 1.0, 1.0, 1.0)], encrypt=True)
    restored = ArrayBlock.from_dict(block.to_dict())
    assert restored == block

def test_block_from_dict_rejects_bad_values():
    with pytest.raises(ValueError):
        ArrayBlock.from_dict({"name": "x", "kind": "bool", "values": [True]})
    with pytest.raises(ValueError):
        ArrayBlock.from_dict({"name": "x", "kind": "quaternion", "values": []})

def test_aware_timestamp_stored_as_utc(codec):
    local = datetime(2024, 5, 6, 12, 30, tzinfo=timezone(timedelta(hours=2)))

    block = codec.encode(BlockKind.TIMESTAMP, "when", [local])
    decoded = codec.decode(block)

    assert block.values == ["2024#5#6#10#30#0#0#"]
    assert decoded.values == [datetime(2024, 5, 6, 10, 30)]
    assert decoded.values[0].tzinfo is None
