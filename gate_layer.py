"""Parallel gate layer: bitwise AND / OR / XOR / NOT over encrypted words.

Each word operation splits the 32 bit positions into ``partitions``
contiguous groups and evaluates every group as one task on a shared thread
pool::

    partitions = 8  ->  bits [0..3] [4..7] ... [28..31], one task each

Tasks only read the input ciphertexts and the (immutable) evaluation
context and return their own slice, so there is nothing to lock. The caller
blocks until every task has finished, then concatenates the slices in group
order. The result is therefore the same for every valid partition count;
``partitions`` only changes latency.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from typing import Any, List, Optional, Sequence, Tuple

from fhe_config import DEFAULT_PARTITIONS, validate_partitions
from fhe_context import EvaluationContext, Gate, check_arity
from fhe_errors import EvaluationError, MalformedInputError
from fhe_word import WORD_BITS, EncryptedWord


logger = logging.getLogger(__name__)


def _evaluate_slice(
    context: EvaluationContext,
    op: Gate,
    a: Sequence[Any],
    b: Optional[Sequence[Any]],
    start: int,
    end: int,
) -> List[Any]:
    if b is None:
        return [context.gate(op, a[i]) for i in range(start, end)]
    return [context.gate(op, a[i], b[i]) for i in range(start, end)]


class GateLayer:
    """Evaluate gates bit by bit over whole words on a bounded worker pool.

    Parameters
    ----------
    context : EvaluationContext
        Shared, read-only gate evaluation capability.
    partitions : int
        Number of bit groups per word operation; must divide 32.
    executor : concurrent.futures.Executor, optional
        Pool to submit tasks to. When omitted the layer starts its own
        ``ThreadPoolExecutor`` and shuts it down in `close`.
    max_workers : int, optional
        Size of the pool the layer starts (defaults to ``partitions``).
    """

    def __init__(
        self,
        context: EvaluationContext,
        partitions: int = DEFAULT_PARTITIONS,
        executor: Optional[Executor] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.context = context
        self.partitions = validate_partitions(partitions)
        self.group_size = WORD_BITS // self.partitions
        self._owns_executor = executor is None
        if executor is None:
            workers = max_workers if max_workers is not None else self.partitions
            executor = ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="gate-layer"
            )
            logger.debug(
                "started gate pool: %d workers, %d partitions of %d bits",
                workers,
                self.partitions,
                self.group_size,
            )
        self._executor = executor

    def close(self) -> None:
        """Shut down the worker pool if this layer created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> "GateLayer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def bitwise(
        self, op: Gate, a: Sequence[Any], b: Optional[Sequence[Any]] = None
    ) -> EncryptedWord:
        """Apply ``op`` to every bit position of ``a`` (and ``b``).

        Raises `EvaluationError` if any partition fails; in that case every
        other partition is still waited for and no output is produced.
        """
        return self.bitwise_many([(op, a, b)])[0]

    def bitwise_many(
        self, ops: Sequence[Tuple[Gate, Sequence[Any], Optional[Sequence[Any]]]]
    ) -> List[EncryptedWord]:
        """Evaluate several independent word operations behind one join.

        ``ops`` holds ``(op, a, b)`` triples (``b`` is ``None`` for NOT). All
        their bit groups are submitted together and waited for together, so
        the whole batch costs one gate latency. Results come back in the
        order of ``ops``.
        """
        for op, a, b in ops:
            check_arity(op, b)
            if len(a) != WORD_BITS or (b is not None and len(b) != WORD_BITS):
                raise MalformedInputError(f"gate operands must be {WORD_BITS}-bit words")

        batches: List[List[Future]] = [
            [
                self._executor.submit(
                    _evaluate_slice, self.context, op, a, b, start, start + self.group_size
                )
                for start in range(0, WORD_BITS, self.group_size)
            ]
            for op, a, b in ops
        ]
        wait([future for futures in batches for future in futures])

        words: List[EncryptedWord] = []
        for (op, _, _), futures in zip(ops, batches):
            bits: List[Any] = []
            for group, future in enumerate(futures):
                exc = future.exception()
                if exc is not None:
                    logger.error("%s failed in bit group %d: %s", op.name, group, exc)
                    if isinstance(exc, EvaluationError):
                        raise exc
                    raise EvaluationError(
                        f"{op.name} worker for bit group {group} failed: {exc}"
                    ) from exc
                bits.extend(future.result())
            words.append(EncryptedWord(bits))
        return words

    def and_(self, a: Sequence[Any], b: Sequence[Any]) -> EncryptedWord:
        return self.bitwise(Gate.AND, a, b)

    def or_(self, a: Sequence[Any], b: Sequence[Any]) -> EncryptedWord:
        return self.bitwise(Gate.OR, a, b)

    def xor(self, a: Sequence[Any], b: Sequence[Any]) -> EncryptedWord:
        return self.bitwise(Gate.XOR, a, b)

    def not_(self, a: Sequence[Any]) -> EncryptedWord:
        return self.bitwise(Gate.NOT, a)
