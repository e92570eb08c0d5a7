import pytest

from fakes import World


@pytest.fixture
def world(tmp_path):
    return World(tmp_path)


@pytest.fixture
def make_world(tmp_path):
    def factory(**kwargs):
        return World(tmp_path, **kwargs)

    return factory
