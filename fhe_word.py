"""Encrypted 32-bit words and the zero-gate bit-permutation layer.

Bit index 0 is the most significant bit, matching SHA-256's big-endian word
convention. Rotations and shifts only re-index existing ciphertexts (shifts
fill the vacated positions with trivial zeros), so none of them evaluates a
homomorphic gate.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Sequence

from fhe_errors import MalformedInputError


WORD_BITS = 32
MASK32 = 0xFFFFFFFF


class EncryptedWord(tuple):
    """Immutable sequence of exactly 32 encrypted bits, MSB first."""

    __slots__ = ()

    def __new__(cls, bits: Iterable[Any]) -> "EncryptedWord":
        word = super().__new__(cls, bits)
        if len(word) != WORD_BITS:
            raise MalformedInputError(
                f"an encrypted word holds {WORD_BITS} bits, got {len(word)}"
            )
        return word

    def __repr__(self) -> str:
        return f"EncryptedWord(<{WORD_BITS} ciphertexts>)"


def int_to_bits(value: int) -> List[bool]:
    """Return the 32 bits of ``value`` (mod 2**32), MSB first."""
    value &= MASK32
    return [bool((value >> (WORD_BITS - 1 - i)) & 1) for i in range(WORD_BITS)]


def bits_to_int(bits: Sequence[bool]) -> int:
    """Inverse of `int_to_bits`."""
    value = 0
    for bit in bits:
        value = (value << 1) | int(bool(bit))
    return value


def trivial_word(context, value: int) -> EncryptedWord:
    """Lift the public constant ``value`` into the encrypted domain."""
    return EncryptedWord(context.trivial_encrypt(bit) for bit in int_to_bits(value))


def encrypt_word(client_key, value: int) -> EncryptedWord:
    """Client side: encrypt a 32-bit integer bit by bit."""
    return EncryptedWord(client_key.encrypt_bit(bit) for bit in int_to_bits(value))


def decrypt_word(client_key, word: Sequence[Any]) -> int:
    """Client side: decrypt a word back to an integer."""
    return bits_to_int([client_key.decrypt_bit(ct) for ct in word])


def words_from_bits(bits: Sequence[Any]) -> List[EncryptedWord]:
    """Group a flat ciphertext sequence into consecutive 32-bit words."""
    if len(bits) % WORD_BITS != 0:
        raise MalformedInputError(
            f"bit sequence length {len(bits)} is not a multiple of {WORD_BITS}"
        )
    return [
        EncryptedWord(bits[i : i + WORD_BITS]) for i in range(0, len(bits), WORD_BITS)
    ]


def _check_amount(n: int) -> None:
    if not 0 <= n < WORD_BITS:
        raise ValueError(f"shift amount must be in [0, {WORD_BITS}), got {n}")


def rotate_right(word: EncryptedWord, n: int) -> EncryptedWord:
    """Rotate right by ``n``: output bit ``(i + n) % 32`` is input bit ``i``."""
    _check_amount(n)
    if n == 0:
        return EncryptedWord(word)
    return EncryptedWord(word[WORD_BITS - n :] + word[: WORD_BITS - n])


def shift_right(word: EncryptedWord, n: int, context) -> EncryptedWord:
    """Logical shift right by ``n``; the ``n`` leading bits become trivial zeros."""
    _check_amount(n)
    zeros = tuple(context.trivial_encrypt(False) for _ in range(n))
    return EncryptedWord(zeros + word[: WORD_BITS - n])


def shift_left(word: EncryptedWord, n: int, context) -> EncryptedWord:
    """Logical shift left by ``n``; the ``n`` trailing bits become trivial zeros."""
    _check_amount(n)
    zeros = tuple(context.trivial_encrypt(False) for _ in range(n))
    return EncryptedWord(word[n:] + zeros)
