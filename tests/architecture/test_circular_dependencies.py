import importlib

import pytest

# dependency order, leaves first
MODULES = [
    'mysqlcore.constants',
    'mysqlcore.exceptions',
    'mysqlcore.auth',
    'mysqlcore.logger',
    'mysqlcore.types',
    'mysqlcore.protocol',
    'mysqlcore.options',
    'mysqlcore.cursor',
    'mysqlcore.connection',
    'mysqlcore.transaction',
    'mysqlcore',
]


@pytest.mark.parametrize('module', MODULES)
def test_module_imports(module):
    """Each module imports on its own, without circular dependencies"""
    importlib.import_module(module)


def test_public_names_resolve():
    package = importlib.import_module('mysqlcore')
    missing = [name for name in package.__all__ if not hasattr(package, name)]
    assert not missing, f'Names in __all__ not defined: {missing}'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
