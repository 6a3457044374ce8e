import pytest

from fhe_context import gen_keys
from gate_layer import GateLayer


@pytest.fixture
def keys():
    """A fresh clear-backend key pair ``(client_key, context)``."""
    return gen_keys()


@pytest.fixture
def client_key(keys):
    return keys[0]


@pytest.fixture
def context(keys):
    return keys[1]


@pytest.fixture
def layer(context):
    with GateLayer(context) as gate_layer:
        yield gate_layer
