"""SHA-256 over encrypted bits.

This module provides:

- `Sha256Evaluator` / `sha256_fhe`: the server side. Takes an already padded,
  already encrypted bit sequence (length a multiple of 512) and returns the
  256 encrypted bits of the digest.
- Client-side helpers for the message owner: `bytes_to_bits`,
  `pad_message_bits`, `encrypt_bits`, `decrypt_bits`, `bits_to_hex`.
- CLI usage: ``fhe-sha256 "message"`` runs the whole round trip with the
  clear reference backend and prints the hex digest.

Typical use::

    client_key, context = gen_keys()
    bits = pad_message_bits(bytes_to_bits(b"abc"))
    encrypted = encrypt_bits(client_key, bits)

    digest_bits = sha256_fhe(encrypted, context)     # evaluator side

    print(bits_to_hex(decrypt_bits(client_key, digest_bits)))
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from concurrent.futures import Executor
from typing import Any, List, Optional, Sequence

import yaml

from adder import add
from compress import State, compress64, lift_round_constants, small_sigma0, small_sigma1
from fhe_config import EvaluatorConfig, load_config
from fhe_context import CountingContext, EvaluationContext, gen_keys
from fhe_errors import ConfigError, EvaluationError, MalformedInputError
from fhe_word import EncryptedWord, trivial_word, words_from_bits
from gate_layer import GateLayer


logger = logging.getLogger(__name__)

BLOCK_BITS = 512
DIGEST_BITS = 256

# Initial hash values (first 32 bits of the fractional parts of the
# square roots of the first 8 primes 2..19), as per FIPS 180-4.
_H0 = [
    0x6A09E667, 0xBB67AE85, 0x3C6EF372, 0xA54FF53A,
    0x510E527F, 0x9B05688C, 0x1F83D9AB, 0x5BE0CD19,
]


#
# Client side (message owner)
#

def bytes_to_bits(data: bytes) -> List[bool]:
    """Expand ``data`` to bits, most significant bit of each byte first."""
    return [bool((byte >> (7 - i)) & 1) for byte in data for i in range(8)]


def pad_message_bits(bits: Sequence[bool]) -> List[bool]:
    """Pad a message of arbitrary bit length per SHA-256.

    Appends a single 1 bit, zeros until the length is 448 mod 512, then the
    original length in bits as a 64-bit big-endian integer. Works for
    non-byte-aligned messages too.
    """
    length_bits = len(bits)
    padded = [bool(b) for b in bits]
    padded.append(True)
    padded.extend([False] * ((448 - len(padded)) % BLOCK_BITS))
    padded.extend(bool((length_bits >> (63 - i)) & 1) for i in range(64))
    return padded


def encrypt_bits(client_key, bits: Sequence[bool]) -> List[Any]:
    return [client_key.encrypt_bit(bit) for bit in bits]


def decrypt_bits(client_key, ciphertexts: Sequence[Any]) -> List[bool]:
    return [client_key.decrypt_bit(ct) for ct in ciphertexts]


def bits_to_hex(bits: Sequence[bool]) -> str:
    """Render a bit sequence (length a multiple of 8) as lowercase hex."""
    if len(bits) % 8 != 0:
        raise ValueError(f"bit length must be a multiple of 8, got {len(bits)}")
    out = bytearray()
    for i in range(0, len(bits), 8):
        byte = 0
        for bit in bits[i : i + 8]:
            byte = (byte << 1) | int(bool(bit))
        out.append(byte)
    return out.hex()


#
# Evaluator side
#

def split_into_blocks(ciphertexts: Sequence[Any]) -> List[List[EncryptedWord]]:
    """Split padded, encrypted input into blocks of 16 encrypted words.

    Rejects empty input and input whose length is not a multiple of 512
    before anything is evaluated.
    """
    if len(ciphertexts) == 0:
        raise MalformedInputError("input is empty; padded input holds at least one block")
    if len(ciphertexts) % BLOCK_BITS != 0:
        raise MalformedInputError(
            f"padded input length must be a multiple of {BLOCK_BITS} bits, "
            f"got {len(ciphertexts)}"
        )
    words = words_from_bits(ciphertexts)
    return [words[i : i + 16] for i in range(0, len(words), 16)]


def initial_hash_state(context: EvaluationContext) -> State:
    """Trivially encrypted SHA-256 initialization vector H0..H7."""
    return tuple(trivial_word(context, h) for h in _H0)


def expand_message_schedule(layer: GateLayer, block: Sequence[EncryptedWord]) -> List[EncryptedWord]:
    """Expand the 16 words of a block to the 64-word message schedule.

    For i from 16 to 63:
        W[i] = σ1(W[i-2]) + W[i-7] + σ0(W[i-15]) + W[i-16]
    """
    if len(block) != 16:
        raise MalformedInputError(f"a block holds 16 words, got {len(block)}")

    w = list(block)
    for i in range(16, 64):
        s1 = small_sigma1(layer, w[i - 2])
        s0 = small_sigma0(layer, w[i - 15])
        w.append(add(layer, add(layer, add(layer, s1, w[i - 7]), s0), w[i - 16]))
    logger.debug("message schedule expanded")
    return w


def update_hash_state(layer: GateLayer, state: Sequence[EncryptedWord], registers: Sequence[EncryptedWord]) -> State:
    """H_{i+1}[j] = H_i[j] + register_j (mod 2**32), a -> H0 ... h -> H7."""
    return tuple(add(layer, h, r) for h, r in zip(state, registers))


class Sha256Evaluator:
    """Drives the compression pipeline over every block of an input.

    One evaluator owns one gate layer (and its worker pool) and the lifted
    constants, so reuse it for several hashes under the same context. Blocks
    are strictly sequential; all parallelism is inside word operations.
    """

    def __init__(
        self,
        context: EvaluationContext,
        config: Optional[EvaluatorConfig] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.config = config if config is not None else EvaluatorConfig()
        self.context = context
        self.layer = GateLayer(
            context,
            partitions=self.config.partitions,
            executor=executor,
            max_workers=self.config.workers,
        )
        # Public constants, lifted once per evaluator.
        self.round_constants = lift_round_constants(context)
        self.initial_state = initial_hash_state(context)

    def close(self) -> None:
        self.layer.close()

    def __enter__(self) -> "Sha256Evaluator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def process_block(self, state: State, block: Sequence[EncryptedWord]) -> State:
        """Compress one 16-word block into ``state`` and return the new state."""
        schedule = expand_message_schedule(self.layer, block)
        registers = compress64(self.layer, state, schedule, self.round_constants)
        return update_hash_state(self.layer, state, registers)

    def hash_bits(self, ciphertexts: Sequence[Any]) -> List[Any]:
        """Return the 256 encrypted digest bits of the padded input."""
        blocks = split_into_blocks(ciphertexts)
        logger.info(
            "hashing %d block(s) with %d partition(s)", len(blocks), self.config.partitions
        )

        state = self.initial_state
        for index, block in enumerate(blocks):
            started = time.perf_counter()
            state = self.process_block(state, block)
            logger.info(
                "block %d/%d done in %.2fs",
                index + 1,
                len(blocks),
                time.perf_counter() - started,
            )

        return [bit for word in state for bit in word]


def sha256_fhe(
    ciphertexts: Sequence[Any],
    context: EvaluationContext,
    config: Optional[EvaluatorConfig] = None,
) -> List[Any]:
    """One-shot helper: hash ``ciphertexts`` with a temporary evaluator."""
    with Sha256Evaluator(context, config) as evaluator:
        return evaluator.hash_bits(ciphertexts)


#
# CLI
#

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fhe-sha256",
        description="Hash a message with SHA-256 evaluated over encrypted bits "
        "(clear reference backend)",
    )
    parser.add_argument("message", nargs="?", help="UTF-8 message to hash")
    parser.add_argument("-f", "--file", help="hash the raw bytes of this file instead")
    parser.add_argument("--config", help="YAML evaluator config")
    parser.add_argument("--partitions", type=int, help="bit groups per word operation (divides 32)")
    parser.add_argument("--report", help="write a YAML run report to this path")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point.

    Usage:
        fhe-sha256 "message"
        fhe-sha256 -f path/to/file

    Generates a key pair, pads and encrypts the input as the message owner
    would, evaluates SHA-256 over the ciphertexts, decrypts the digest and
    prints it as hex.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if (args.message is None) == (args.file is None):
        parser.print_usage(sys.stderr)
        sys.stderr.write("error: give either a message or -f FILE\n")
        return 1

    try:
        config = load_config(args.config) if args.config else EvaluatorConfig()
        config = config.with_overrides(partitions=args.partitions)
    except ConfigError as e:
        sys.stderr.write(f"Config error: {e}\n")
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.log_level_value,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.file is not None:
        try:
            with open(args.file, "rb") as f:
                data = f.read()
        except OSError as e:
            sys.stderr.write(f"Error reading file '{args.file}': {e}\n")
            return 1
    else:
        data = args.message.encode("utf-8")

    # Message owner: pad and encrypt.
    client_key, server_context = gen_keys()
    padded = pad_message_bits(bytes_to_bits(data))
    encrypted = encrypt_bits(client_key, padded)

    # Evaluator: hash without decrypting anything.
    context = CountingContext(server_context)
    started = time.perf_counter()
    try:
        digest_bits = sha256_fhe(encrypted, context, config)
    except EvaluationError as e:
        logger.error("evaluation failed: %s", e)
        return 2
    elapsed = time.perf_counter() - started

    # Message owner: decrypt.
    digest_hex = bits_to_hex(decrypt_bits(client_key, digest_bits))
    print(digest_hex)

    if args.report:
        report = {
            "message_length_bits": len(data) * 8,
            "blocks": len(padded) // BLOCK_BITS,
            "digest_hex": digest_hex,
            "elapsed_seconds": round(elapsed, 3),
            "config": config.to_dict(),
            "gate_counts": context.snapshot(),
        }
        try:
            with open(args.report, "w") as f:
                yaml.dump(report, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            sys.stderr.write(f"Error writing report '{args.report}': {e}\n")
            return 1
        logger.info("report written to %s", args.report)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
