import os
import sys

import pytest

# Make tests/helpers.py importable regardless of pytest import mode
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from helpers import FakeClock, Stack  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stack():
    s = Stack()
    yield s
    s.close()
