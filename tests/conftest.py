import os

import pytest

# keep test runs off the rotating log files
os.environ.setdefault("ENVIRONMENT", "testing")

from tests.mocks import make_collection  # noqa: E402


@pytest.fixture
def settings_coll():
    return make_collection()
