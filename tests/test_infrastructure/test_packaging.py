"""
Packaging checks for the console script.

The cli package ships without an __init__.py, so the wheel only contains it
when package discovery includes namespace packages.
"""

import tomllib
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]


def test_package_discovery_includes_namespace_packages() -> None:
    config = tomllib.loads((ROOT / "pyproject.toml").read_text())
    find = config["tool"]["setuptools"]["packages"]["find"]

    assert find["where"] == ["src"]
    assert find["namespaces"] is True
    assert config["project"]["scripts"]["uuid-registry"] == "uuid_registry.cli.main:main"


def test_cli_package_is_discovered() -> None:
    setuptools = pytest.importorskip("setuptools")

    packages = setuptools.find_namespace_packages(where=str(ROOT / "src"), include=["uuid_registry*"])

    assert "uuid_registry.cli" in packages
    assert "uuid_registry.kernel" in packages
