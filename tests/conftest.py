"""Shared test configuration for homestead tests.

Provides:
- Local environment fixtures for the platforms used across tests
- A YAML helper that loads and validates build documents
- HTTP mock server serving build files for URL loading tests
"""

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest
from pytest_httpserver import HTTPServer

from homestead.engine.environment import LocalEnvironment
from homestead.engine.loader import load_build_from_yaml
from homestead.engine.schema import BuildDocument

BUILDS_DIR = Path(__file__).parent / "builds"


@pytest.fixture
def macos_env() -> LocalEnvironment:
    return LocalEnvironment(
        platform="macos",
        hostname="studio",
        arch="arm64",
        user="user",
        home="/home/user",
        environment={"HOME": "/home/user", "EDITOR": "vim"},
    )


@pytest.fixture
def linux_env() -> LocalEnvironment:
    return LocalEnvironment(
        platform="linux",
        distro="ubuntu",
        hostname="devbox",
        arch="x86_64",
        user="user",
        home="/home/user",
        environment={"HOME": "/home/user"},
    )


@pytest.fixture
def windows_env() -> LocalEnvironment:
    return LocalEnvironment(
        platform="windows",
        hostname="desktop",
        arch="amd64",
        user="user",
        home="C:\\Users\\user",
    )


@pytest.fixture
def load_yaml() -> Callable[[str], BuildDocument]:
    """
    Load a dedented YAML string into a BuildDocument, failing the test on errors.

    Usage:
        document = load_yaml('''
            build:
              - link: { source: a, target: b }
        ''')
    """

    def _load(text: str) -> BuildDocument:
        result = load_build_from_yaml(textwrap.dedent(text), source="<test>")
        assert result.is_success, result.error
        return result.unwrap()

    return _load


@pytest.fixture
def example_build_path() -> Path:
    """The example build shipped with the tests."""
    return BUILDS_DIR / "example.yaml"


@pytest.fixture
def build_server(httpserver: HTTPServer, example_build_path: Path) -> HTTPServer:
    """
    Local HTTP server serving build documents.

    Endpoints:
    - GET /build.yaml: The example build
    - GET /broken.yaml: Invalid YAML
    - GET /missing.yaml: 404
    """
    httpserver.expect_request("/build.yaml").respond_with_data(
        example_build_path.read_text(encoding="utf-8"), content_type="application/yaml"
    )
    httpserver.expect_request("/broken.yaml").respond_with_data(
        "build: [unclosed", content_type="application/yaml"
    )
    httpserver.expect_request("/missing.yaml").respond_with_data("not found", status=404)
    return httpserver
