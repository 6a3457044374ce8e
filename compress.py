"""SHA-256 round primitives and compression loop over encrypted words.

Every function takes a `GateLayer` as its first argument and only combines
the bit-permutation layer, the gate layer and the adder:

    S1    = (e >>> 6) ^ (e >>> 11) ^ (e >>> 25)
    ch    = (e & f) ^ (~e & g)
    temp1 = h + ch + w + k + S1

    S0    = (a >>> 2) ^ (a >>> 13) ^ (a >>> 22)
    maj   = (a & b) ^ (a & c) ^ (b & c)
    temp2 = S0 + maj

    a' = temp1 + temp2
    e' = d + temp1
    b', c', d', f', g', h' = a, b, c, e, f, g

All additions go through `adder.add` (modulo 2**32).
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from adder import add
from fhe_errors import MalformedInputError
from fhe_word import EncryptedWord, rotate_right, shift_right, trivial_word


logger = logging.getLogger(__name__)

State = Tuple[
    EncryptedWord,
    EncryptedWord,
    EncryptedWord,
    EncryptedWord,
    EncryptedWord,
    EncryptedWord,
    EncryptedWord,
    EncryptedWord,
]

# Standard SHA-256 round constants k[0..63] from FIPS 180-4.
K_VALUES: Tuple[int, ...] = (
    0x428A2F98, 0x71374491, 0xB5C0FBCF, 0xE9B5DBA5, 0x3956C25B, 0x59F111F1, 0x923F82A4, 0xAB1C5ED5,
    0xD807AA98, 0x12835B01, 0x243185BE, 0x550C7DC3, 0x72BE5D74, 0x80DEB1FE, 0x9BDC06A7, 0xC19BF174,
    0xE49B69C1, 0xEFBE4786, 0x0FC19DC6, 0x240CA1CC, 0x2DE92C6F, 0x4A7484AA, 0x5CB0A9DC, 0x76F988DA,
    0x983E5152, 0xA831C66D, 0xB00327C8, 0xBF597FC7, 0xC6E00BF3, 0xD5A79147, 0x06CA6351, 0x14292967,
    0x27B70A85, 0x2E1B2138, 0x4D2C6DFC, 0x53380D13, 0x650A7354, 0x766A0ABB, 0x81C2C92E, 0x92722C85,
    0xA2BFE8A1, 0xA81A664B, 0xC24B8B70, 0xC76C51A3, 0xD192E819, 0xD6990624, 0xF40E3585, 0x106AA070,
    0x19A4C116, 0x1E376C08, 0x2748774C, 0x34B0BCB5, 0x391C0CB3, 0x4ED8AA4A, 0x5B9CCA4F, 0x682E6FF3,
    0x748F82EE, 0x78A5636F, 0x84C87814, 0x8CC70208, 0x90BEFFFA, 0xA4506CEB, 0xBEF9A3F7, 0xC67178F2,
)


def lift_round_constants(context) -> List[EncryptedWord]:
    """Trivially encrypt ``K_VALUES`` (no secret key involved)."""
    return [trivial_word(context, k) for k in K_VALUES]


def ch(layer, x: EncryptedWord, y: EncryptedWord, z: EncryptedWord) -> EncryptedWord:
    """Choice: bits of ``y`` where ``x`` is set, bits of ``z`` elsewhere."""
    return layer.xor(layer.and_(x, y), layer.and_(layer.not_(x), z))


def maj(layer, x: EncryptedWord, y: EncryptedWord, z: EncryptedWord) -> EncryptedWord:
    """Majority vote of the three bits at each position."""
    return layer.xor(layer.xor(layer.and_(x, y), layer.and_(x, z)), layer.and_(y, z))


def _xor3(layer, a: EncryptedWord, b: EncryptedWord, c: EncryptedWord) -> EncryptedWord:
    return layer.xor(layer.xor(a, b), c)


def big_sigma0(layer, x: EncryptedWord) -> EncryptedWord:
    return _xor3(layer, rotate_right(x, 2), rotate_right(x, 13), rotate_right(x, 22))


def big_sigma1(layer, x: EncryptedWord) -> EncryptedWord:
    return _xor3(layer, rotate_right(x, 6), rotate_right(x, 11), rotate_right(x, 25))


def small_sigma0(layer, x: EncryptedWord) -> EncryptedWord:
    """σ0, used by the message schedule."""
    return _xor3(
        layer, rotate_right(x, 7), rotate_right(x, 18), shift_right(x, 3, layer.context)
    )


def small_sigma1(layer, x: EncryptedWord) -> EncryptedWord:
    """σ1, used by the message schedule."""
    return _xor3(
        layer, rotate_right(x, 17), rotate_right(x, 19), shift_right(x, 10, layer.context)
    )


def compression(
    layer,
    a: EncryptedWord,
    b: EncryptedWord,
    c: EncryptedWord,
    d: EncryptedWord,
    e: EncryptedWord,
    f: EncryptedWord,
    g: EncryptedWord,
    h: EncryptedWord,
    w: EncryptedWord,
    k: EncryptedWord,
) -> State:
    """Perform one SHA-256 compression round on encrypted registers.

    Parameters
    ----------
    layer : GateLayer
        Gate layer used for every homomorphic operation.
    a, b, c, d, e, f, g, h : EncryptedWord
        Current working registers.
    w : EncryptedWord
        Message schedule word ``w[i]``.
    k : EncryptedWord
        Trivially encrypted round constant ``k[i]``.

    Returns
    -------
    (a', b', c', d', e', f', g', h') : tuple[EncryptedWord, ...]
        Registers after the round.
    """
    temp1 = add(layer, h, ch(layer, e, f, g))
    temp1 = add(layer, temp1, w)
    temp1 = add(layer, temp1, k)
    temp1 = add(layer, temp1, big_sigma1(layer, e))

    temp2 = add(layer, big_sigma0(layer, a), maj(layer, a, b, c))

    return (
        add(layer, temp1, temp2),
        a,
        b,
        c,
        add(layer, d, temp1),
        e,
        f,
        g,
    )


def compress64(
    layer,
    state: Sequence[EncryptedWord],
    ws: Sequence[EncryptedWord],
    ks: Sequence[EncryptedWord],
) -> State:
    """Run the full 64-round compression loop for one block.

    ``state`` is the hash state the registers start from, ``ws`` the 64-word
    schedule and ``ks`` the lifted round constants. Returns the registers
    after round 63; folding them into the hash state is the caller's job.
    """
    if len(state) != 8:
        raise MalformedInputError(f"compress64 expects 8 state words, got {len(state)}")
    if len(ws) != 64:
        raise MalformedInputError(f"compress64 expects 64 message schedule words, got {len(ws)}")
    if len(ks) != 64:
        raise MalformedInputError(f"compress64 expects 64 round constants, got {len(ks)}")

    registers = tuple(state)
    for i in range(64):
        registers = compression(layer, *registers, ws[i], ks[i])
        if i % 16 == 15:
            logger.debug("compression round %d/64 done", i + 1)
    return registers
