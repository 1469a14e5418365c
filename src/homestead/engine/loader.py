"""
YAML build document loader.

This module loads build documents from YAML strings, files and URLs and
validates them into BuildDocument models.

Features:
- Mapping form (``- link: {...}``) and tag form (``- !link {...}``)
- Condition tags (``!locale {...}``, ``!default``, ``!bool``, ``!all``, ``!any``, ``!not``)
- Remote documents over HTTP(S) via httpx
- Failures returned as LoadResult, never raised
"""

import logging
import re
from pathlib import Path
from typing import Any

import httpx
import yaml

from .load_result import LoadResult
from .schema import NODE_KINDS, BuildDocument

logger = logging.getLogger(__name__)

DEFAULT_URL_TIMEOUT = 10.0

CONDITION_TAGS = frozenset({"locale", "default", "bool", "all", "any", "not"})


class BuildYamlLoader(yaml.SafeLoader):
    """
    SafeLoader that understands the build document tags.

    Only true/false are booleans, so ``on: [install]`` keeps its ``on`` key
    and ``yes``/``no``/``off`` stay strings.
    """


BOOL_TAG = "tag:yaml.org,2002:bool"

BuildYamlLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != BOOL_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
BuildYamlLoader.add_implicit_resolver(
    BOOL_TAG, re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"), list("tTfF")
)


def _construct_tagged(loader: BuildYamlLoader, suffix: str, node: yaml.Node) -> Any:
    """
    Turn ``!kind value`` into ``{kind: value}``.

    ``!default`` becomes the plain string "default" and ``!bool`` scalars are
    parsed as YAML booleans.
    """
    if suffix not in NODE_KINDS and suffix not in CONDITION_TAGS:
        raise yaml.constructor.ConstructorError(
            None, None, f"unknown tag '!{suffix}'", node.start_mark
        )

    if suffix == "default":
        return "default"
    if suffix == "bool" and isinstance(node, yaml.ScalarNode):
        return {"bool": loader.construct_yaml_bool(node)}

    value: Any
    if isinstance(node, yaml.MappingNode):
        value = loader.construct_mapping(node, deep=True)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_scalar(node)
    return {suffix: value}


BuildYamlLoader.add_multi_constructor("!", _construct_tagged)


def parse_yaml(yaml_content: str) -> Any:
    """Parse YAML text with build tag support."""
    return yaml.load(yaml_content, Loader=BuildYamlLoader)  # noqa: S506


def load_build_from_yaml(yaml_content: str, source: str = "<string>") -> LoadResult[BuildDocument]:
    """
    Load and validate a build document from a YAML string.

    Args:
        yaml_content: YAML content as string
        source: Source identifier for error messages (default: "<string>")

    Returns:
        LoadResult.success(BuildDocument) if valid
        LoadResult.failure(error_message) with parse or validation errors

    Example:
        yaml_str = '''
        build:
          - !package_manager { name: brew, install: "brew install ${{ package.alias }}" }
          - !package { name: bat }
        '''
        result = load_build_from_yaml(yaml_str)
    """
    try:
        data = parse_yaml(yaml_content)
    except yaml.YAMLError as e:
        return LoadResult.failure(f"Invalid YAML syntax in {source}: {e}")

    if not isinstance(data, dict):
        kind = "empty" if data is None else type(data).__name__
        return LoadResult.failure(f"Build document {source} must be a YAML mapping, got {kind}")

    schema_result = BuildDocument.validate_yaml_dict(data)
    if not schema_result.is_success:
        return LoadResult.failure(f"Build validation failed in {source}:\n{schema_result.error}")

    document = schema_result.unwrap()
    logger.info(f"Loaded build from {source} ({len(document.build)} top-level node(s))")
    return LoadResult.success(document, metadata={"source": source})


def load_build_from_file(file_path: str | Path) -> LoadResult[BuildDocument]:
    """
    Load and validate a build document from a YAML file.

    Args:
        file_path: Path to the YAML build file

    Returns:
        LoadResult.success(BuildDocument) if valid
        LoadResult.failure(error_message) otherwise

    Example:
        result = load_build_from_file("~/dotfiles/build.yaml")
        if result.is_success:
            plan = resolve_build(result.value, detect_local_environment())
    """
    path = Path(file_path).expanduser()

    if not path.exists():
        return LoadResult.failure(f"Build file not found: {file_path}")

    if not path.is_file():
        return LoadResult.failure(f"Path is not a file: {file_path}")

    try:
        with open(path, encoding="utf-8") as f:
            yaml_content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        return LoadResult.failure(f"Failed to read file '{file_path}': {e}")

    return load_build_from_yaml(yaml_content, source=str(file_path))


def load_build_from_url(
    url: str, timeout: float = DEFAULT_URL_TIMEOUT
) -> LoadResult[BuildDocument]:
    """
    Download and validate a build document.

    Args:
        url: HTTP(S) URL of the YAML build file
        timeout: Request timeout in seconds

    Returns:
        LoadResult.success(BuildDocument) if valid
        LoadResult.failure(error_message) on network, HTTP or validation errors
    """
    if not url.startswith(("http://", "https://")):
        return LoadResult.failure(f"Unsupported URL scheme (expected http or https): {url}")

    logger.info(f"Fetching build from {url}")
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        return LoadResult.failure(
            f"Failed to fetch {url}: HTTP {e.response.status_code} {e.response.reason_phrase}"
        )
    except httpx.HTTPError as e:
        return LoadResult.failure(f"Failed to fetch {url}: {e}")

    return load_build_from_yaml(response.text, source=url)


__all__ = [
    "BuildYamlLoader",
    "DEFAULT_URL_TIMEOUT",
    "load_build_from_file",
    "load_build_from_url",
    "load_build_from_yaml",
    "parse_yaml",
]
