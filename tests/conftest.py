import logging

import pytest

from helpers import FakeRunner, make_request


@pytest.fixture
def request_factory(tmp_path):
    def _make(**kwargs):
        return make_request(tmp_path / "work", **kwargs)

    return _make


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture(autouse=True)
def _isolate_package_logger():
    pkg = logging.getLogger("buildverify")
    handlers = list(pkg.handlers)
    yield
    for h in list(pkg.handlers):
        if h not in handlers:
            pkg.removeHandler(h)
            h.close()
