import pytest

from dyrpc.config import ModelConfig
from dyrpc.run_model import ProtocolModel

CLIENT = 1
SERVER = 2
MALLORY = 3


@pytest.fixture
def config():
    """C=1 and S=2 honest, key 1:0 shared with S; Mallory (3) is corrupted."""
    return ModelConfig(
        bad={MALLORY},
        shared_keys={(CLIENT, 0): SERVER, (MALLORY, 0): SERVER, (CLIENT, 1): MALLORY},
        seed=1234,
    )


@pytest.fixture
def model(config):
    m = ProtocolModel(config)
    for pid in (CLIENT, SERVER, MALLORY):
        m.add_principal(pid)
    return m


@pytest.fixture
def client_key(model):
    return model.new_key(CLIENT)
