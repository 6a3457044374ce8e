import itertools

import pytest

from fhe_context import (
    ClearCiphertext,
    ClientKey,
    CountingContext,
    EvaluationContext,
    Gate,
    gen_keys,
)
from fhe_errors import EvaluationError


EXPECTED = {
    Gate.AND: lambda x, y: x and y,
    Gate.OR: lambda x, y: x or y,
    Gate.XOR: lambda x, y: x != y,
}


@pytest.mark.parametrize("op", [Gate.AND, Gate.OR, Gate.XOR])
@pytest.mark.parametrize("x,y", list(itertools.product([False, True], repeat=2)))
def test_binary_gates_decrypt_to_truth_table(client_key, context, op, x, y):
    out = context.gate(op, client_key.encrypt_bit(x), client_key.encrypt_bit(y))
    assert client_key.decrypt_bit(out) == EXPECTED[op](x, y)


@pytest.mark.parametrize("x", [False, True])
def test_not_gate(client_key, context, x):
    assert client_key.decrypt_bit(context.gate(Gate.NOT, client_key.encrypt_bit(x))) == (not x)


@pytest.mark.parametrize("value", [False, True])
def test_trivial_encryption_mixes_with_real_ciphertexts(client_key, context, value):
    """
    A trivially encrypted constant must combine with a real ciphertext and
    decrypt under the client key.
    """
    out = context.gate(Gate.XOR, client_key.encrypt_bit(True), context.trivial_encrypt(value))
    assert client_key.decrypt_bit(out) == (not value)


def test_gate_arity_is_checked(client_key, context):
    bit = client_key.encrypt_bit(True)
    with pytest.raises(ValueError):
        context.gate(Gate.NOT, bit, bit)
    with pytest.raises(ValueError):
        context.gate(Gate.AND, bit)


def test_mismatched_keys_fail_evaluation(context):
    foreign = ClientKey().encrypt_bit(True)
    with pytest.raises(EvaluationError):
        context.gate(Gate.AND, context.trivial_encrypt(True), foreign)


def test_non_ciphertext_operand_fails_evaluation(context):
    with pytest.raises(EvaluationError):
        context.gate(Gate.NOT, True)


def test_decrypt_with_other_key_fails(client_key):
    with pytest.raises(EvaluationError):
        ClientKey().decrypt_bit(client_key.encrypt_bit(False))


def test_ciphertext_repr_hides_value(client_key):
    assert "True" not in repr(client_key.encrypt_bit(True))


def test_gen_keys_returns_matching_pair():
    client_key, context = gen_keys()
    assert isinstance(context, EvaluationContext)
    assert context.key_id == client_key.key_id
    assert gen_keys()[0].key_id != client_key.key_id


def test_counting_context_counts_per_gate(client_key, context):
    counting = CountingContext(context)
    a = client_key.encrypt_bit(True)
    b = client_key.encrypt_bit(False)

    counting.gate(Gate.AND, a, b)
    counting.gate(Gate.AND, a, b)
    counting.gate(Gate.NOT, a)
    counting.trivial_encrypt(False)

    assert counting.snapshot() == {"and": 2, "or": 0, "xor": 0, "not": 1, "trivial": 1}
    assert counting.total_gates == 3

    counting.reset()
    assert counting.total_gates == 0


def test_counting_context_passes_results_through(client_key, context):
    counting = CountingContext(context)
    out = counting.gate(Gate.OR, client_key.encrypt_bit(False), client_key.encrypt_bit(True))
    assert isinstance(out, ClearCiphertext)
    assert client_key.decrypt_bit(out) is True
