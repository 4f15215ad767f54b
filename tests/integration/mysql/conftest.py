"""
Fixtures for MySQL integration tests.
"""
import pathlib

import pytest

HERE = pathlib.Path(__file__).resolve().parent


def pytest_collection_modifyitems(items):
    for item in items:
        if HERE in pathlib.Path(item.fspath).resolve().parents:
            item.add_marker(pytest.mark.integration)
