"""
homestead command-line interface.

Usage:
    homestead --file build.yaml show
    homestead --url https://example.com/build.yaml show --format markdown
    homestead --override-platform windows show --include install_package
    homestead validate
    homestead context

Configuration (environment variables):
    HOMESTEAD_FILE: Build file when --file/--url are not given
    HOMESTEAD_LOG_LEVEL: DEBUG, INFO, WARNING (default), ERROR or CRITICAL
    HOMESTEAD_URL_TIMEOUT: Seconds to wait for --url downloads (1-300, default 10)
"""

import json
import logging
import sys
from dataclasses import dataclass

import click

from . import __version__
from .engine.build_result import ResolvedBuild
from .engine.environment import LocalEnvironment, detect_local_environment
from .engine.exceptions import BuildResolutionError
from .engine.load_result import LoadResult
from .engine.loader import DEFAULT_URL_TIMEOUT, load_build_from_file, load_build_from_url
from .engine.resolver import resolve_build
from .engine.schema import BuildDocument, iter_nodes
from .formatting import OUTPUT_FORMATS, format_build, format_context_markdown

logger = logging.getLogger(__name__)

DEFAULT_BUILD_FILE = "homestead.yaml"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(level_name: str) -> None:
    """Configure root logging to stderr, falling back to WARNING on bad input."""
    level_str = level_name.upper()
    if level_str not in VALID_LOG_LEVELS:
        print(
            f"Warning: Invalid log level '{level_name}'. "
            f"Valid levels: {', '.join(VALID_LOG_LEVELS)}. Using WARNING.",
            file=sys.stderr,
        )
        level_str = "WARNING"

    logging.basicConfig(
        level=getattr(logging, level_str),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


@dataclass
class CliConfig:
    """Options shared by every command."""

    file_path: str | None
    url: str | None
    url_timeout: float
    overrides: dict[str, str | None]

    def load(self) -> BuildDocument:
        """Load the build document or exit with the loader's error."""
        result: LoadResult[BuildDocument]
        if self.url:
            result = load_build_from_url(self.url, timeout=self.url_timeout)
        else:
            result = load_build_from_file(self.file_path or DEFAULT_BUILD_FILE)
        if not result.is_success:
            raise click.ClickException(result.error or "Failed to load build")
        return result.unwrap()

    def environment(self) -> LocalEnvironment:
        return detect_local_environment().with_overrides(**self.overrides)

    def resolve(self, document: BuildDocument, environment: LocalEnvironment) -> ResolvedBuild:
        try:
            return resolve_build(document, environment)
        except BuildResolutionError as e:
            raise click.ClickException(str(e)) from e


def _split_kinds(values: tuple[str, ...]) -> list[str] | None:
    """Accept both ``--include a,b`` and ``--include a --include b``."""
    kinds = [kind.strip() for value in values for kind in value.split(",") if kind.strip()]
    return kinds or None


@click.group()
@click.version_option(version=__version__, prog_name="homestead")
@click.option(
    "--file",
    "-f",
    "file_path",
    type=click.Path(dir_okay=False),
    envvar="HOMESTEAD_FILE",
    default=None,
    help=f"Build file (default: {DEFAULT_BUILD_FILE}).",
)
@click.option("--url", "-u", default=None, help="Download the build file from a URL.")
@click.option(
    "--url-timeout",
    type=click.FloatRange(1, 300, clamp=True),
    envvar="HOMESTEAD_URL_TIMEOUT",
    default=DEFAULT_URL_TIMEOUT,
    show_default=True,
    help="Seconds to wait for --url downloads.",
)
@click.option(
    "--log-level",
    envvar="HOMESTEAD_LOG_LEVEL",
    default="WARNING",
    show_default=True,
    help="Logging level for messages on stderr.",
)
@click.option("--override-platform", default=None, help="Pretend to run on this platform.")
@click.option("--override-distro", default=None, help="Pretend to run on this distro.")
@click.option("--override-hostname", default=None, help="Pretend to run on this host.")
@click.option("--override-arch", default=None, help="Pretend to run on this architecture.")
@click.option("--override-user", default=None, help="Pretend to run as this user.")
@click.pass_context
def cli(
    ctx: click.Context,
    file_path: str | None,
    url: str | None,
    url_timeout: float,
    log_level: str,
    override_platform: str | None,
    override_distro: str | None,
    override_hostname: str | None,
    override_arch: str | None,
    override_user: str | None,
) -> None:
    """Resolve a declarative build file into provisioning steps for this machine."""
    configure_logging(log_level)
    if file_path and url:
        raise click.UsageError("--file and --url cannot be used together")

    ctx.obj = CliConfig(
        file_path=file_path,
        url=url,
        url_timeout=url_timeout,
        overrides={
            "platform": override_platform,
            "distro": override_distro,
            "hostname": override_hostname,
            "arch": override_arch,
            "user": override_user,
        },
    )


@cli.command()
@click.option(
    "--format",
    "format_type",
    type=click.Choice(OUTPUT_FORMATS),
    default="yaml",
    show_default=True,
    help="Output format.",
)
@click.option("--include", multiple=True, help="Only these action kinds (comma separated).")
@click.option("--exclude", multiple=True, help="Drop these action kinds (comma separated).")
@click.option("--hook", "lifecycle", default=None, help="Only hooks run on this lifecycle action.")
@click.pass_obj
def show(
    config: CliConfig,
    format_type: str,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    lifecycle: str | None,
) -> None:
    """Print the resolved action list."""
    document = config.load()
    result = config.resolve(document, config.environment())

    try:
        result = result.filter(include=_split_kinds(include), exclude=_split_kinds(exclude))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--include/--exclude") from e

    if lifecycle is not None:
        result = result.model_copy(update={"actions": tuple(result.for_lifecycle(lifecycle))})

    click.echo(format_build(result, format_type))
    for warning in result.warnings:
        click.secho(f"warning: {warning.location}: {warning.message}", fg="yellow", err=True)


@cli.command()
@click.pass_obj
def validate(config: CliConfig) -> None:
    """Load and validate the build file without resolving it."""
    document = config.load()
    source = config.url or config.file_path or DEFAULT_BUILD_FILE
    node_count = sum(1 for _ in iter_nodes(document.build))
    click.echo(f"{source}: valid ({node_count} node(s))")


@cli.command()
@click.option(
    "--format",
    "format_type",
    type=click.Choice(("markdown", "json")),
    default="markdown",
    show_default=True,
    help="Output format.",
)
@click.pass_obj
def context(config: CliConfig, format_type: str) -> None:
    """Show the detected environment and what the build makes available."""
    environment = config.environment()
    document = config.load()
    result = config.resolve(document, environment)
    repository = result.repository.path if result.repository else None

    if format_type == "json":
        data = {
            "environment": environment.describe(),
            "managers": list(result.managers),
            "repository": repository,
        }
        click.echo(json.dumps(data, indent=2))
    else:
        click.echo(
            format_context_markdown(environment.describe(), list(result.managers), repository)
        )


def main() -> None:
    """Console script entry point."""
    cli(prog_name="homestead")


__all__ = ["cli", "configure_logging", "main"]
