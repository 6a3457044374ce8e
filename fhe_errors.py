"""Exceptions raised by the homomorphic SHA-256 evaluator.

Malformed inputs and bad configuration are also ``ValueError`` so callers that
already guard with ``except ValueError`` keep working.
"""

from __future__ import annotations


class FheShaError(Exception):
    """Base class for all evaluator errors."""


class MalformedInputError(FheShaError, ValueError):
    """Input has the wrong shape (word not 32 bits, length not a multiple of 512)."""


class EvaluationError(FheShaError):
    """A homomorphic gate evaluation, or the worker running it, failed."""


class ConfigError(FheShaError, ValueError):
    """Invalid evaluator configuration."""
