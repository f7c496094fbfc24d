import pytest
import structlog


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any ``configure_logging`` call so later tests don't write to a closed stream."""
    yield
    structlog.reset_defaults()
