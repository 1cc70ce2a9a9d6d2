"""Package-level checks."""
from pathlib import Path
import warnings

import pytest

import formstate

MODULES = sorted(Path(formstate.__file__).parent.glob('*.py'))


@pytest.mark.parametrize('path', MODULES, ids=lambda p: p.name)
def test_module_compiles_without_warnings(path):
    source = path.read_text(encoding='utf-8')
    with warnings.catch_warnings():
        warnings.simplefilter('error')
        compile(source, str(path), 'exec')


def test_public_names_exported():
    for name in formstate.__all__:
        assert hasattr(formstate, name)
