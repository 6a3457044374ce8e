import hashlib

import pytest
import yaml

from fhe_context import ClientKey
from fhe_config import EvaluatorConfig
from fhe_errors import EvaluationError, MalformedInputError
from fhe_word import MASK32, decrypt_word, encrypt_word
from sha256_fhe import (
    Sha256Evaluator,
    _H0,
    bits_to_hex,
    bytes_to_bits,
    decrypt_bits,
    encrypt_bits,
    expand_message_schedule,
    initial_hash_state,
    main,
    pad_message_bits,
    sha256_fhe,
    split_into_blocks,
)


EMPTY_DIGEST = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def _rotr(x, n):
    return ((x >> n) | (x << (32 - n))) & MASK32


def _plain_schedule(words):
    w = list(words)
    for i in range(16, 64):
        s0 = _rotr(w[i - 15], 7) ^ _rotr(w[i - 15], 18) ^ (w[i - 15] >> 3)
        s1 = _rotr(w[i - 2], 17) ^ _rotr(w[i - 2], 19) ^ (w[i - 2] >> 10)
        w.append((w[i - 16] + s0 + w[i - 7] + s1) & MASK32)
    return w


def _hash(client_key, context, message, config=None):
    encrypted = encrypt_bits(client_key, pad_message_bits(bytes_to_bits(message)))
    return bits_to_hex(decrypt_bits(client_key, sha256_fhe(encrypted, context, config)))


#
# Client-side helpers
#

@pytest.mark.parametrize("length", [0, 1, 5, 55, 56, 63, 64, 100])
def test_padding_matches_byte_padding(length):
    """
    Bit-level padding of a byte message equals the usual 0x80 / zeros /
    64-bit length byte padding.
    """
    msg = bytes(range(length))
    expected = bytearray(msg) + b"\x80"
    while len(expected) % 64 != 56:
        expected.append(0)
    expected += (length * 8).to_bytes(8, "big")

    padded = pad_message_bits(bytes_to_bits(msg))
    assert len(padded) % 512 == 0
    assert padded == bytes_to_bits(bytes(expected))


@pytest.mark.parametrize("length_bits,blocks", [(0, 1), (447, 1), (448, 2), (512, 2), (959, 2), (960, 3)])
def test_padding_block_boundaries(length_bits, blocks):
    assert len(pad_message_bits([True] * length_bits)) == blocks * 512


def test_padding_non_byte_aligned():
    padded = pad_message_bits([True, False, True])
    assert padded[:4] == [True, False, True, True]
    assert not any(padded[4:448])
    assert padded[-3:] == [False, True, True]


def test_bits_to_hex():
    assert bits_to_hex(bytes_to_bits(b"\x00\xff\xa5")) == "00ffa5"
    with pytest.raises(ValueError):
        bits_to_hex([True] * 7)


#
# Evaluator
#

@pytest.mark.parametrize("length", [0, 100, 511, 513])
def test_malformed_input_rejected_before_evaluation(client_key, context, length):
    bits = encrypt_bits(client_key, [False] * length)
    with pytest.raises(MalformedInputError):
        split_into_blocks(bits)
    with pytest.raises(MalformedInputError):
        sha256_fhe(bits, context)


def test_split_into_blocks(client_key):
    blocks = split_into_blocks(encrypt_bits(client_key, [False] * 1024))
    assert len(blocks) == 2
    assert all(len(block) == 16 for block in blocks)


def test_initial_hash_state(client_key, context):
    state = initial_hash_state(context)
    assert [decrypt_word(client_key, w) for w in state] == _H0


def test_expand_message_schedule(client_key, layer):
    block = [0x61626380] + [0] * 14 + [0x18]
    schedule = expand_message_schedule(layer, [encrypt_word(client_key, w) for w in block])
    assert len(schedule) == 64
    assert [decrypt_word(client_key, w) for w in schedule] == _plain_schedule(block)


def test_expand_message_schedule_needs_16_words(client_key, layer):
    with pytest.raises(MalformedInputError):
        expand_message_schedule(layer, [encrypt_word(client_key, 0)] * 15)


def test_empty_message(client_key, context):
    assert _hash(client_key, context, b"") == EMPTY_DIGEST


@pytest.mark.parametrize(
    "message",
    [
        b"abc",
        # 55 bytes: the largest message that still fits one block.
        b"a" * 55,
        # 56 bytes: the length field spills into a second block.
        bytes(range(56)),
        # 64 bytes: two blocks, exercises chaining of the hash state.
        b"abcdefghbcdefghicdefghijdefghijkefghijklfghijklmghijklmnhijklmno",
    ],
)
def test_digest_matches_hashlib(client_key, context, message):
    assert _hash(client_key, context, message) == hashlib.sha256(message).hexdigest()


def test_evaluator_reuse_and_partitions(client_key, context):
    """
    One evaluator hashes several inputs; a different partition count gives
    the same digest.
    """
    messages = [b"hello world", b""]
    with Sha256Evaluator(context, EvaluatorConfig(partitions=4)) as evaluator:
        for msg in messages:
            bits = encrypt_bits(client_key, pad_message_bits(bytes_to_bits(msg)))
            digest = bits_to_hex(decrypt_bits(client_key, evaluator.hash_bits(bits)))
            assert digest == hashlib.sha256(msg).hexdigest()


def test_digest_is_256_bits(client_key, context):
    bits = encrypt_bits(client_key, pad_message_bits(bytes_to_bits(b"x")))
    assert len(sha256_fhe(bits, context, EvaluatorConfig(partitions=32))) == 256


def test_foreign_ciphertexts_fail_the_hash(context):
    """
    Input encrypted under another key pair yields an explicit failure, never
    a digest.
    """
    other = ClientKey()
    bits = encrypt_bits(other, pad_message_bits(bytes_to_bits(b"abc")))
    with pytest.raises(EvaluationError):
        sha256_fhe(bits, context)


#
# CLI
#

def test_cli_prints_digest_and_writes_report(tmp_path, capsys):
    report = tmp_path / "report.yaml"
    assert main(["abc", "--partitions", "4", "--report", str(report)]) == 0

    out = capsys.readouterr().out.strip()
    assert out == hashlib.sha256(b"abc").hexdigest()

    data = yaml.safe_load(report.read_text())
    assert data["digest_hex"] == out
    assert data["blocks"] == 1
    assert data["config"]["partitions"] == 4
    assert data["gate_counts"]["and"] > 0


def test_cli_file_mode(tmp_path, capsys):
    path = tmp_path / "msg.bin"
    path.write_bytes(b"")
    assert main(["-f", str(path)]) == 0
    assert capsys.readouterr().out.strip() == EMPTY_DIGEST


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["abc", "-f", "somefile"],
        ["abc", "--partitions", "3"],
        ["-f", "/nonexistent/path/to/msg"],
    ],
)
def test_cli_usage_errors(argv):
    assert main(argv) == 1


def test_cli_unwritable_report(tmp_path, capsys):
    report = tmp_path / "missing_dir" / "report.yaml"
    assert main(["abc", "--report", str(report)]) == 1

    captured = capsys.readouterr()
    # The digest is still printed; only the report failed.
    assert captured.out.strip() == hashlib.sha256(b"abc").hexdigest()
    assert "Error writing report" in captured.err
