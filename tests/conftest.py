import pytest

from hyperwatch.registry import Registry
from hyperwatch.store import Store


@pytest.fixture
def store(tmp_path):
    store = Store(str(tmp_path / "test.db"))
    yield store
    store.close()


@pytest.fixture
def registry(store):
    return Registry(store, super_admin="999")
