import pytest

from observability.event_store import event_store


@pytest.fixture(autouse=True)
def clear_event_store():
    """Events are process-global; keep tests independent."""
    event_store.clear()
    yield
    event_store.clear()
