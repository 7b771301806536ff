import pytest
import sys

@pytest.fixture(autouse=True)
def clean_jnd_imports():
    yield
    keys_to_delete = {key for key in sys.modules if key == "jnd" or key.startswith("jnd.")}
    for key in keys_to_delete:
        del sys.modules[key]
