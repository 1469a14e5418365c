"""Tests for build document schema validation and loading (YAML, files, URLs)."""

import textwrap
from pathlib import Path

import pytest
from pytest_httpserver import HTTPServer

from homestead.engine.loader import (
    load_build_from_file,
    load_build_from_url,
    load_build_from_yaml,
    parse_yaml,
)
from homestead.engine.schema import (
    AllCondition,
    BoolCondition,
    BuildDocument,
    CaseNode,
    DefaultCondition,
    HookNode,
    LinkNode,
    LocaleCondition,
    MatrixNode,
    NamespaceNode,
    NotCondition,
    PackageManagerNode,
    PackageNode,
    RepoNode,
    iter_nodes,
)


def _load_failure(text: str) -> str:
    result = load_build_from_yaml(textwrap.dedent(text))
    assert result.is_failure
    assert result.error is not None
    return result.error


# -----------------------------------------------------------------------
# Mapping form
# -----------------------------------------------------------------------


class TestMappingForm:
    """Nodes written as ``- kind: {...}`` mappings."""

    def test_all_node_kinds(self, load_yaml) -> None:
        document = load_yaml("""
            version: "1.0"
            shell: /bin/zsh
            build:
              - repo: { path: ~/dotfiles, url: https://example.com/dotfiles.git }
              - package_manager: { name: brew, install: "brew install ${{ package.alias }}" }
              - package: { name: bat }
              - link: { source: ~/.zshrc, target: "${{ repo.path }}/.zshrc" }
              - hook: { on: install, exec: "echo hi" }
              - namespace:
                  values: { editor: nvim }
                  include:
                    - hook: { on: [install], exec: "echo ${{ vars.editor }}" }
              - matrix:
                  rows: [{ file: .vimrc }]
                  include: []
              - case:
                  - condition: { platform: linux }
                    include: []
                  - condition: default
                    include: []
        """)
        kinds = [type(node) for node in document.build]
        assert kinds == [
            RepoNode,
            PackageManagerNode,
            PackageNode,
            LinkNode,
            HookNode,
            NamespaceNode,
            MatrixNode,
            CaseNode,
        ]
        assert document.version == "1.0"
        assert document.shell == "/bin/zsh"

    def test_explicit_kind_mapping(self, load_yaml) -> None:
        document = load_yaml("""
            build:
              - kind: link
                source: a
                target: b
        """)
        assert document.build == [LinkNode(source="a", target="b")]

    def test_list_value_expands_to_siblings(self, load_yaml) -> None:
        document = load_yaml("""
            build:
              - link:
                  - { source: a, target: b }
                  - { source: c, target: d }
              - package: [bat, fd]
        """)
        assert document.build == [
            LinkNode(source="a", target="b"),
            LinkNode(source="c", target="d"),
            PackageNode(name="bat"),
            PackageNode(name="fd"),
        ]

    def test_hook_exec_forms(self, load_yaml) -> None:
        document = load_yaml("""
            build:
              - hook: { on: install, exec: "echo a" }
              - hook: { on: [install, uninstall], exec: { shell: /bin/bash, command: "echo b" } }
        """)
        first, second = document.build
        assert first.on == ["install"]
        assert first.exec.shell is None
        assert second.exec.shell == "/bin/bash"
        assert second.on == ["install", "uninstall"]

    def test_package_manager_shell_prefix(self, load_yaml) -> None:
        document = load_yaml("""
            build:
              - package_manager:
                  name: apt
                  shell_install: "apt install -y ${{ package.alias }}"
                  shell_has: "dpkg -s ${{ package.alias }}"
        """)
        manager = document.build[0]
        assert manager.install.command == "apt install -y ${{ package.alias }}"
        assert manager.has.command == "dpkg -s ${{ package.alias }}"
        assert manager.bootstrap is None

    def test_scalar_values_become_strings(self, load_yaml) -> None:
        document = load_yaml("""
            version: 1.2
            build:
              - namespace:
                  values: { jobs: 4, enabled: true }
              - matrix:
                  values: { n: [1, 2] }
        """)
        assert document.version == "1.2"
        assert document.build[0].values == {"jobs": "4", "enabled": "true"}
        assert document.build[1].expanded_rows() == [{"n": "1"}, {"n": "2"}]

    def test_matrix_columns_transpose(self, load_yaml) -> None:
        document = load_yaml("""
            build:
              - matrix:
                  values:
                    src: [a, b]
                    dst: [x, y]
        """)
        assert document.build[0].expanded_rows() == [
            {"src": "a", "dst": "x"},
            {"src": "b", "dst": "y"},
        ]


# -----------------------------------------------------------------------
# Tag form
# -----------------------------------------------------------------------


class TestTagForm:
    """Nodes and conditions written with YAML tags."""

    def test_example_build(self, example_build_path: Path) -> None:
        result = load_build_from_file(example_build_path)
        assert result.is_success, result.error
        document = result.unwrap()
        assert isinstance(document.build[0], RepoNode)
        case = document.build[1]
        assert isinstance(case, CaseNode)
        assert case.branches[0].condition == LocaleCondition(platform="windows")
        assert isinstance(case.branches[1].condition, DefaultCondition)
        assert case.branches[1].include[0].bootstrap is not None

    def test_condition_tags(self, load_yaml) -> None:
        document = load_yaml("""
            build:
              - !case
                - condition: !all [ !locale { platform: linux }, !not { bool: false } ]
                  include: []
                - condition: !bool true
                  include: []
                - condition: !default
                  include: []
        """)
        branches = document.build[0].branches
        assert branches[0].condition == AllCondition(
            conditions=[
                LocaleCondition(platform="linux"),
                NotCondition(condition=BoolCondition(value=False)),
            ]
        )
        assert branches[1].condition == BoolCondition(value=True)
        assert branches[2].is_fallback

    def test_unknown_tag_fails(self) -> None:
        error = _load_failure("""
            build:
              - !symlink { source: a, target: b }
        """)
        assert "unknown tag '!symlink'" in error

    def test_parse_yaml_keeps_standard_tags(self) -> None:
        assert parse_yaml("a: !!str 1") == {"a": "1"}


# -----------------------------------------------------------------------
# Validation failures
# -----------------------------------------------------------------------


class TestValidation:
    def test_unknown_node_key(self) -> None:
        error = _load_failure("""
            build:
              - link: { source: a, target: b, mode: "0644" }
        """)
        assert "Build validation failed" in error
        assert "mode" in error

    def test_default_branch_not_last(self) -> None:
        error = _load_failure("""
            build:
              - case:
                  - condition: default
                    include: []
                  - condition: { platform: linux }
                    include: []
        """)
        assert "must be the last branch" in error

    def test_two_default_branches(self) -> None:
        error = _load_failure("""
            build:
              - case:
                  - include: []
                  - condition: default
                    include: []
        """)
        assert "at most one" in error

    def test_matrix_column_mismatch(self) -> None:
        error = _load_failure("""
            build:
              - matrix:
                  values: { a: [1, 2], b: [1] }
        """)
        assert "different lengths" in error

    @pytest.mark.parametrize(
        "node",
        [
            "matrix: { rows: [{ my-key: x }] }",
            "matrix: { values: { 1st: [a, b] } }",
            "namespace: { values: { my.key: x } }",
        ],
    )
    def test_binding_names_must_be_referenceable(self, node: str) -> None:
        error = _load_failure(f"build:\n  - {node}\n")
        assert "Invalid binding name" in error

    def test_valid_binding_names(self, load_yaml) -> None:
        document = load_yaml("""
            build:
              - namespace:
                  values: { _private: a, Editor2: b }
        """)
        assert document.build[0].values == {"_private": "a", "Editor2": "b"}

    def test_unknown_condition_field_rejected_with_location(self) -> None:
        error = _load_failure("""
            build:
              - link: { source: a, target: b }
              - case:
                  - condition: { platform: linux, shell: zsh }
                    include: []
        """)
        assert "build[1].case[0].condition" in error
        assert "shell" in error

    def test_nested_default_rejected(self) -> None:
        error = _load_failure("""
            build:
              - case:
                  - condition: { not: default }
                    include: []
        """)
        assert "only valid as a case fallback" in error

    def test_hook_requires_lifecycle(self) -> None:
        error = _load_failure("""
            build:
              - hook: { on: [], exec: "echo" }
        """)
        assert "on" in error

    def test_invalid_yaml(self) -> None:
        error = _load_failure("build: [unclosed")
        assert "Invalid YAML syntax" in error

    @pytest.mark.parametrize("text", ["", "- a\n- b\n"])
    def test_document_must_be_mapping(self, text: str) -> None:
        error = _load_failure(text)
        assert "must be a YAML mapping" in error

    def test_validate_yaml_dict_rejects_non_mapping(self) -> None:
        result = BuildDocument.validate_yaml_dict(["build"])
        assert result.is_failure


# -----------------------------------------------------------------------
# Files and URLs
# -----------------------------------------------------------------------


class TestSources:
    def test_missing_file(self, tmp_path: Path) -> None:
        result = load_build_from_file(tmp_path / "nope.yaml")
        assert result.is_failure
        assert "not found" in result.error

    def test_directory_is_not_a_file(self, tmp_path: Path) -> None:
        result = load_build_from_file(tmp_path)
        assert result.is_failure
        assert "not a file" in result.error

    def test_file_failure_names_source(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("build:\n  - link: { source: a }\n", encoding="utf-8")
        result = load_build_from_file(path)
        assert result.is_failure
        assert str(path) in result.error

    def test_url(self, build_server: HTTPServer) -> None:
        result = load_build_from_url(build_server.url_for("/build.yaml"))
        assert result.is_success, result.error
        assert result.metadata["source"].endswith("/build.yaml")
        assert isinstance(result.unwrap().build[0], RepoNode)

    def test_url_http_error(self, build_server: HTTPServer) -> None:
        result = load_build_from_url(build_server.url_for("/missing.yaml"))
        assert result.is_failure
        assert "HTTP 404" in result.error

    def test_url_invalid_yaml(self, build_server: HTTPServer) -> None:
        result = load_build_from_url(build_server.url_for("/broken.yaml"))
        assert result.is_failure
        assert "Invalid YAML syntax" in result.error

    def test_url_scheme_checked(self) -> None:
        result = load_build_from_url("file:///etc/passwd")
        assert result.is_failure
        assert "Unsupported URL scheme" in result.error


class TestIterNodes:
    def test_visits_every_branch_in_preorder(self, load_yaml) -> None:
        document = load_yaml("""
            build:
              - case:
                  - condition: { platform: linux }
                    include:
                      - link: { source: a, target: b }
                  - condition: default
                    include:
                      - namespace:
                          values: { x: "1" }
                          include:
                            - link: { source: c, target: d }
        """)
        locations = [location for location, _ in iter_nodes(document.build)]
        assert locations == [
            "build[0]",
            "build[0].case[0].include[0]",
            "build[0].case[1].include[0]",
            "build[0].case[1].include[0].include[0]",
        ]
