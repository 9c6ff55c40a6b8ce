import pytest

from chalk_cli.config import ENV_KEYS


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Point the global config dir at a temp path and clear config env vars."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for var in ENV_KEYS:
        monkeypatch.delenv(var, raising=False)
