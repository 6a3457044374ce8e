"""Quick experiment: what the lookahead adder and the worker pool buy us.

We:
- Add a few operand pairs with the carry-lookahead `add` and the ripple-carry
  `ripple_add`, counting gates and timing both.
- Hash the whole padded message given with `-m`/`-f` once per partition
  count and check every run matches hashlib.

Usage:
    python experiment_gate_counts.py
    python experiment_gate_counts.py -m "hello world" --partitions 1 4 8
    python experiment_gate_counts.py -f msg.bin --output data/gate_counts.yaml
"""

from __future__ import annotations

import argparse
import hashlib
import logging
import os
import sys
import time
from typing import Dict, List, Optional

import yaml

from adder import add, ripple_add
from fhe_config import EvaluatorConfig, validate_partitions
from fhe_context import CountingContext, gen_keys
from fhe_errors import ConfigError
from fhe_word import decrypt_word, encrypt_word
from gate_layer import GateLayer
from sha256_fhe import (
    Sha256Evaluator,
    bits_to_hex,
    bytes_to_bits,
    decrypt_bits,
    encrypt_bits,
    pad_message_bits,
)


OPERANDS = [
    (0x00000000, 0x00000000),
    (0xFFFFFFFF, 0x00000001),
    (0x7FFFFFFF, 0x7FFFFFFF),
    (0x6A09E667, 0xBB67AE85),
]


def run_adder_comparison(partitions: int) -> Dict:
    client_key, server_context = gen_keys()
    context = CountingContext(server_context)
    results: Dict = {}

    with GateLayer(context, partitions=partitions) as layer:
        for name, fn in (("lookahead", add), ("ripple", ripple_add)):
            context.reset()
            started = time.perf_counter()
            for x, y in OPERANDS:
                out = decrypt_word(
                    client_key,
                    fn(layer, encrypt_word(client_key, x), encrypt_word(client_key, y)),
                )
                expected = (x + y) & 0xFFFFFFFF
                if out != expected:
                    raise AssertionError(
                        f"{name}: {x:08x} + {y:08x} gave {out:08x}, expected {expected:08x}"
                    )
            elapsed = time.perf_counter() - started
            counts = context.snapshot()
            results[name] = {
                "gates_per_add": sum(v for k, v in counts.items() if k != "trivial") // len(OPERANDS),
                "seconds_per_add": round(elapsed / len(OPERANDS), 6),
            }
            print(f"{name:>9}: {results[name]['gates_per_add']} gates/add, "
                  f"{results[name]['seconds_per_add'] * 1e3:.2f} ms/add")
    return results


def run_partition_sweep(msg: bytes, partitions: List[int]) -> List[Dict]:
    expected_hex = hashlib.sha256(msg).hexdigest()
    client_key, server_context = gen_keys()
    encrypted = encrypt_bits(client_key, pad_message_bits(bytes_to_bits(msg)))

    rows: List[Dict] = []
    for t in partitions:
        context = CountingContext(server_context)
        started = time.perf_counter()
        with Sha256Evaluator(context, EvaluatorConfig(partitions=t)) as evaluator:
            digest_bits = evaluator.hash_bits(encrypted)
        elapsed = time.perf_counter() - started
        digest_hex = bits_to_hex(decrypt_bits(client_key, digest_bits))

        status = "OK" if digest_hex == expected_hex else "MISMATCH"
        print(f"partitions={t:<2} {elapsed:8.2f}s  gates={context.total_gates:,}  {status}")
        rows.append({
            "partitions": t,
            "seconds": round(elapsed, 3),
            "gates": context.snapshot(),
            "digest_hex": digest_hex,
            "matches_hashlib": digest_hex == expected_hex,
        })
    return rows


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Compare adder variants and partition counts for the encrypted SHA-256"
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("-m", "--message", default="hello world", help="message to hash")
    source.add_argument("-f", "--file", help="hash this file's bytes instead")
    parser.add_argument(
        "--partitions",
        type=int,
        nargs="+",
        default=[1, 2, 4, 8],
        help="partition counts to try (default: 1 2 4 8)",
    )
    parser.add_argument("--output", help="write results as YAML to this path")
    args = parser.parse_args(argv)

    try:
        for t in args.partitions:
            validate_partitions(t)
    except ConfigError as e:
        sys.stderr.write(f"Config error: {e}\n")
        return 1

    logging.basicConfig(level=logging.WARNING)

    if args.file:
        try:
            with open(args.file, "rb") as f:
                msg = f.read()
        except OSError as e:
            sys.stderr.write(f"Error reading file '{args.file}': {e}\n")
            return 1
    else:
        msg = args.message.encode("utf-8")

    print("=== Adder comparison ===")
    adders = run_adder_comparison(max(args.partitions))

    print(f"=== Partition sweep ({len(msg)} bytes) ===")
    sweep = run_partition_sweep(msg, args.partitions)

    if args.output:
        os.makedirs(os.path.dirname(args.output) or ".", exist_ok=True)
        with open(args.output, "w") as f:
            yaml.dump({"adders": adders, "partition_sweep": sweep}, f,
                      default_flow_style=False, sort_keys=False)
        print(f"Results written to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
