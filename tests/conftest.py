"""Shared test fixtures for SQL Gateway."""

import os
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from typer.testing import CliRunner

from sql_gateway.cli.main import app
from sql_gateway.core.gateway import QueryGateway
from sql_gateway.core.provisioner import ConnectionProvisioner
from tests.fakes import FakeDriver, make_descriptor, people_cursor


@pytest.fixture(autouse=True)
def clean_gateway_env(monkeypatch):
    """Keep the developer's SQL_GATEWAY_* variables out of the tests."""
    for name in list(os.environ):
        if name.startswith("SQL_GATEWAY_") and name != "SQL_GATEWAY_TEST_URL":
            monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Point the default config path away from the real home directory."""
    monkeypatch.setattr(
        "sql_gateway.core.config.DEFAULT_CONFIG_PATH", tmp_path / "config.toml"
    )


@pytest.fixture
def runner():
    """Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_runner(runner):
    """Invoke the CLI app with the given arguments."""

    def invoke(*args: str, **kwargs):
        return runner.invoke(app, list(args), **kwargs)

    return invoke


@pytest.fixture
def temp_dir():
    """Temporary directory for test files."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_driver():
    return FakeDriver(people_cursor())


@pytest.fixture
def provisioner(fake_driver):
    return ConnectionProvisioner(
        make_descriptor(), pooled=True, pool_size=2, driver=fake_driver
    )


@pytest.fixture
def gateway(provisioner):
    with QueryGateway(provisioner) as gw:
        yield gw
