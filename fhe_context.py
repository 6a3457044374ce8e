"""Evaluation contexts: the gate-evaluation capability the circuit is built on.

The SHA-256 circuit only ever needs two things from an encryption scheme:

- ``gate(op, a, b)``: evaluate AND / OR / XOR (or NOT on ``a`` alone) over
  encrypted bits, producing a fresh encrypted bit.
- ``trivial_encrypt(value)``: encode a public constant as a ciphertext
  without the secret key, so it can be mixed with real ciphertexts.

`ClearEvaluationContext` is a reference backend that keeps the bit in the
clear. It is **not encryption**: it only tags every ciphertext with the key
pair it belongs to so that key mix-ups are caught, which is what the circuit
tests need. Plug a real boolean FHE scheme in by subclassing
`EvaluationContext`.
"""

from __future__ import annotations

import abc
import enum
import logging
import secrets
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from fhe_errors import EvaluationError


logger = logging.getLogger(__name__)


class Gate(enum.Enum):
    AND = "and"
    OR = "or"
    XOR = "xor"
    NOT = "not"

    @property
    def arity(self) -> int:
        return 1 if self is Gate.NOT else 2


def check_arity(op: Gate, b: Any) -> None:
    """Raise ``ValueError`` if the operand count does not match ``op``."""
    if op.arity == 1 and b is not None:
        raise ValueError(f"{op.name} takes a single operand")
    if op.arity == 2 and b is None:
        raise ValueError(f"{op.name} takes two operands")


class EvaluationContext(abc.ABC):
    """Server-side capability to evaluate gates over encrypted bits.

    Implementations must be immutable after construction and safe to share
    between threads: the gate layer calls `gate` concurrently from every
    worker.
    """

    @abc.abstractmethod
    def gate(self, op: Gate, a: Any, b: Any = None) -> Any:
        """Evaluate ``op`` homomorphically and return a new ciphertext."""

    @abc.abstractmethod
    def trivial_encrypt(self, value: bool) -> Any:
        """Encode the public constant ``value`` as a ciphertext."""


@dataclass(frozen=True)
class ClearCiphertext:
    """Ciphertext of the clear backend: the bit itself plus its key id."""

    value: bool
    key_id: str

    def __repr__(self) -> str:
        # Keep the bit out of logs and assertion messages.
        return f"ClearCiphertext(key_id={self.key_id!r})"


_CLEAR_GATES = {
    Gate.AND: lambda x, y: x and y,
    Gate.OR: lambda x, y: x or y,
    Gate.XOR: lambda x, y: x != y,
}


class ClearEvaluationContext(EvaluationContext):
    """Insecure reference backend, see module docstring."""

    def __init__(self, key_id: str) -> None:
        self._key_id = key_id

    @property
    def key_id(self) -> str:
        return self._key_id

    def _unwrap(self, ct: Any) -> bool:
        if not isinstance(ct, ClearCiphertext):
            raise EvaluationError(
                f"expected ClearCiphertext, got {type(ct).__name__}"
            )
        if ct.key_id != self._key_id:
            raise EvaluationError(
                f"ciphertext belongs to key {ct.key_id!r}, context uses {self._key_id!r}"
            )
        return ct.value

    def gate(self, op: Gate, a: Any, b: Any = None) -> ClearCiphertext:
        check_arity(op, b)
        x = self._unwrap(a)
        if op is Gate.NOT:
            return ClearCiphertext(not x, self._key_id)
        y = self._unwrap(b)
        return ClearCiphertext(_CLEAR_GATES[op](x, y), self._key_id)

    def trivial_encrypt(self, value: bool) -> ClearCiphertext:
        return ClearCiphertext(bool(value), self._key_id)


class ClientKey:
    """Message-owner side of a clear-backend key pair."""

    def __init__(self, key_id: Optional[str] = None) -> None:
        self.key_id = key_id if key_id is not None else secrets.token_hex(8)

    def encrypt_bit(self, value: bool) -> ClearCiphertext:
        return ClearCiphertext(bool(value), self.key_id)

    def decrypt_bit(self, ct: Any) -> bool:
        if not isinstance(ct, ClearCiphertext) or ct.key_id != self.key_id:
            raise EvaluationError("ciphertext was not produced under this key pair")
        return ct.value

    def server_context(self) -> ClearEvaluationContext:
        return ClearEvaluationContext(self.key_id)


def gen_keys() -> Tuple[ClientKey, ClearEvaluationContext]:
    """Generate a fresh clear-backend key pair ``(client_key, context)``."""
    client_key = ClientKey()
    logger.debug("generated clear-backend key pair %s", client_key.key_id)
    return client_key, client_key.server_context()


class CountingContext(EvaluationContext):
    """Wrap another context and count what it is asked to evaluate."""

    def __init__(self, inner: EvaluationContext) -> None:
        self.inner = inner
        self._lock = threading.Lock()
        self._gates: Counter = Counter()
        self._trivial = 0

    def gate(self, op: Gate, a: Any, b: Any = None) -> Any:
        result = self.inner.gate(op, a, b)
        with self._lock:
            self._gates[op] += 1
        return result

    def trivial_encrypt(self, value: bool) -> Any:
        result = self.inner.trivial_encrypt(value)
        with self._lock:
            self._trivial += 1
        return result

    @property
    def total_gates(self) -> int:
        with self._lock:
            return sum(self._gates.values())

    def snapshot(self) -> Dict[str, int]:
        """Return the counters as a plain dict (gate name -> count)."""
        with self._lock:
            counts = {op.value: self._gates.get(op, 0) for op in Gate}
            counts["trivial"] = self._trivial
        return counts

    def reset(self) -> None:
        with self._lock:
            self._gates.clear()
            self._trivial = 0
