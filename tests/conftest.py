# tests/conftest.py

import multiprocessing
import sys

import pytest

from tests.utils.fake_transport import FakeTransportFactory


def pytest_configure(config: pytest.Config) -> None:
    """
    Use the fork start method on Linux so that the live daphne server inherits the configured Django setup.
    """
    if sys.platform.startswith("linux"):
        multiprocessing.set_start_method("fork", force=True)


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()
