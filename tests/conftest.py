import os
import random

import pytest

from tests.helpers.clock import ManualClock


@pytest.fixture(autouse=True)
def _seed_everything():
    random.seed(0)
    os.environ.setdefault("PYTHONHASHSEED", "0")


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
