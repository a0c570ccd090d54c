"""Shared fixtures for tracking3 tests."""

import os

import pytest
from click.testing import CliRunner

from tracking3 import core
from tracking3.core import Configuration
from tracking3.executor import Response

FIXTURE_EMAIL = "john@example.com"
FIXTURE_PASSWORD = "s3cr37"
FIXTURE_ID_APPLICATION = "my-3rd-party-app-integration"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def tmp_project(tmp_path):
    """Create a temporary project directory and cd into it."""
    original = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(original)


@pytest.fixture(autouse=True)
def global_tracking3_dir(tmp_path, monkeypatch):
    """Point the global ~/.tracking3 directory at a temp location."""
    fake_global = tmp_path / "fake_home" / ".tracking3"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(core, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(core, "GLOBAL_CONFIG", fake_global / "config.yaml")
    for var in (
        "TRACKING3_EMAIL",
        "TRACKING3_PASSWORD",
        "TRACKING3_ACCESS_TOKEN",
        "TRACKING3_REFRESH_TOKEN",
    ):
        monkeypatch.delenv(var, raising=False)
    return fake_global


def make_configuration(**overrides):
    """Factory for valid Configuration objects."""
    values = {"email": FIXTURE_EMAIL, "password": FIXTURE_PASSWORD}
    values.update(overrides)
    return Configuration(**values)


class FakeTransport:
    """In-memory Transport that replays a canned outcome."""

    def __init__(self, response="", status=200, error_code=0, error=""):
        self.options = {}
        self.response = response
        self.status = status
        self.error_code = error_code
        self.error = error
        self.executed = False
        self.closed = False

    def set_option(self, option, value):
        self.options[option] = value

    def execute(self):
        self.executed = True
        return self.response

    def get_status_code(self):
        return self.status

    def get_error_code(self):
        return self.error_code

    def get_error(self):
        return self.error

    def close(self):
        self.closed = True


def make_response(status=200, body='{"ok": true}'):
    return Response(status=status, body=body)
