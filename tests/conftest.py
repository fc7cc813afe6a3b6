import pytest

from notifyx import Registry


@pytest.fixture
def registry():
    """An isolated registry, torn down after the test."""
    r = Registry()
    yield r
    r.cleanup_all()
