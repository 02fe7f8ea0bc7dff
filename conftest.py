import os

import pytest

ENV_PREFIXES = ("TALEFORGE_",)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Strip TALEFORGE_* settings from the environment and run from an empty dir."""
    for name in list(os.environ):
        if name.startswith(ENV_PREFIXES):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    yield
