import pytest

from tests.fakes import MemoryHeightStore, TimerFactory


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def store():
    return MemoryHeightStore()
