import json
import logging
import sys

import pytest

from pulsar import app as app_context
from tests import handlers


FRAMEWORK = {
    "server_request": "pulsar.core.http:request_from_environ",
    "response_factory": "pulsar.core.http:ResponseFactory",
}


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Undo every process-wide side effect a kernel boot has."""
    for key in ("APP_ENV", "APP_TIMEZONE", "TZ"):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.setattr(app_context, "_instance", None)
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    handlers.CALLS.clear()
    yield
    logging.captureWarnings(False)


@pytest.fixture
def make_project(tmp_path):
    """Write a project directory and return its path.

    Every config file defaults to an empty collection; pass overrides as keyword
    arguments named after the file.
    """

    def _make(env="dev", dotenv_extra="", **files):
        (tmp_path / ".env").write_text(f"APP_ENV={env}\n{dotenv_extra}", encoding="utf-8")
        config_dir = tmp_path / "config"
        config_dir.mkdir(exist_ok=True)

        defaults = {
            "framework": FRAMEWORK,
            "services": {},
            "parameters": {},
            "listeners": {},
            "routes": [],
            "middlewares": {},
            "packages": {},
        }
        defaults.update(files)
        for name, content in defaults.items():
            if content is None:
                continue
            (config_dir / f"{name}.json").write_text(json.dumps(content), encoding="utf-8")
        return tmp_path

    return _make
