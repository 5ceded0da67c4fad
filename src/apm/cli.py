"""apm CLI - Command line interface for apm."""
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import click

from apm.core.errors import ApmError, LinkConflictError, ResolutionError, StorageError
from apm.git import AuthType, DownloadOptions, GitRemote, normalize_url
from apm.manager import InstallOptions, Manager
from apm.models import DEFAULT_VERSION, Mapping, Package
from apm.requirements import DEFAULT_REQUIREMENTS_FILE, Requirements
from apm.storage.cache import STORAGE_ENV, ContentCache

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(name)s: %(message)s",
)
logger = logging.getLogger("apm")

EXIT_FAILURE = 1
EXIT_NOT_FOUND = 3
EXIT_CONFLICT = 4
EXIT_STORAGE = 5


def exit_code_for(error: Exception) -> int:
    if isinstance(error, ResolutionError):
        return EXIT_NOT_FOUND
    if isinstance(error, LinkConflictError):
        return EXIT_CONFLICT
    if isinstance(error, StorageError):
        return EXIT_STORAGE
    return EXIT_FAILURE


def parse_source(value: str) -> Tuple[str, str]:
    """Split "<src>@<version>" into (src, version); version defaults to master."""
    src, _, version = value.strip().partition("@")
    return src, version or DEFAULT_VERSION


def parse_mappings(values: Tuple[str, ...]) -> Dict[str, str]:
    """Parse repeated "<src>[@<version>]=<dest>" options."""
    mappings: Dict[str, str] = {}
    for value in values:
        key, sep, dest = value.partition("=")
        if not sep or not dest.strip():
            raise click.BadParameter(f"expected <src>[@<version>]=<dest>, got {value!r}")
        mappings[key.strip()] = dest.strip()
    return mappings


class Context:
    def __init__(
        self,
        workdir: Path,
        storage: Optional[str],
        use_gitconfig: bool,
        download: DownloadOptions,
    ) -> None:
        self.workdir = workdir
        self.storage = storage
        self.use_gitconfig = use_gitconfig
        self.download = download

    def url(self, location: str) -> str:
        url = normalize_url(location, use_git_config=self.use_gitconfig)
        logger.debug(f"Override url {location} to {url}")
        return url

    def manager(self) -> Manager:
        return Manager(ContentCache(self.storage, remote=GitRemote(self.download)))

    def options(self, fail_fast: bool) -> InstallOptions:
        return InstallOptions(workdir=self.workdir, fail_fast=fail_fast, download=self.download)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.option(
    "--workdir", "-w",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Working directory holding the .apm mount point (default: current directory)",
)
@click.option(
    "--storage",
    envvar=STORAGE_ENV,
    default=None,
    help="Package storage directory (default: ~/.apm)",
)
@click.option(
    "--use-gitconfig/--no-use-gitconfig",
    default=True,
    help="Rewrite URLs with url.<base>.insteadOf from the global git config",
)
@click.option(
    "--auth",
    type=click.Choice([a.value for a in AuthType]),
    default=AuthType.NONE.value,
    help="Authentication for remote repositories",
)
@click.option("--username", envvar="APM_USERNAME", default=None, help="Username for HTTP basic auth")
@click.option("--password", envvar="APM_PASSWORD", default=None, help="Password for HTTP basic auth")
@click.pass_context
def main(ctx, debug, workdir, storage, use_gitconfig, auth, username, password):
    """apm - fetch file-based packages from git and link them into a project."""
    if debug:
        logger.setLevel(logging.DEBUG)
    ctx.obj = Context(
        workdir=workdir,
        storage=storage,
        use_gitconfig=use_gitconfig,
        download=DownloadOptions(auth=AuthType(auth), username=username, password=password),
    )


@main.command()
@click.option(
    "--file", "-f", "file_",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path(DEFAULT_REQUIREMENTS_FILE),
    help="Requirements file",
)
@click.pass_obj
def install(obj: Context, file_: Path):
    """Install every package listed in a requirements file.

    Stops at the first package that fails.

    Exit codes:
        0: Success
        1: Generic runtime failure
        3: Requested version not found
        4: A destination holds a file that is not a symlink
        5: Storage cannot be written
    """
    try:
        requirements = Requirements.load(file_)
        manager = obj.manager()
        count = 0
        for batch in requirements.to_packages():
            packages = [pkg.model_copy(update={"url": obj.url(pkg.url)}) for pkg in batch]
            report = manager.install(packages, obj.options(fail_fast=True))
            count += len(report.installed)
        click.echo(f"[OK] Installed {count} package(s) from {file_}")
    except ApmError as e:
        logger.error(f"Install failed: {e}")
        sys.exit(exit_code_for(e))
    except Exception as e:
        logger.error(f"Install failed: {str(e)}")
        sys.exit(EXIT_FAILURE)


@main.command()
@click.argument("url")
@click.option("--path", "-p", default=".", help="Path of the package inside the repository")
@click.option(
    "--mapping", "-m", "mappings",
    multiple=True,
    default=("*@master=.",),
    help="<src>[@<version>]=<dest>: link a file, directory or glob of the package at dest",
)
@click.option(
    "--file", "-f", "file_",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path(DEFAULT_REQUIREMENTS_FILE),
    help="Requirements file",
)
@click.option("--save", "-s", is_flag=True, help="Save the added package to the requirements file")
@click.pass_obj
def add(obj: Context, url: str, path: str, mappings: Tuple[str, ...], file_: Path, save: bool):
    """Install a package and optionally record it in the requirements file.

    Packages that fail are reported and skipped; the rest are still installed.
    """
    try:
        requirements = Requirements.load(file_)
        url = obj.url(url)
        packages: List[Package] = []
        for key, dest in parse_mappings(mappings).items():
            src, version = parse_source(key)
            packages.append(Package(url=url, path=path, version=version, mappings=[Mapping(src=src, dest=dest)]))

        report = obj.manager().install(packages, obj.options(fail_fast=False))
        for installed in report.installed:
            requirements.add_package(installed.package)
            click.echo(f"[OK] {installed.package.url}@{installed.package.version}")
            for link in installed.links:
                click.echo(f"  {link}")
        for failed in report.failed:
            click.echo(f"[FAILED] {failed.package.describe()}: {failed.error}")

        if save and report.installed:
            requirements.save(file_)
    except click.BadParameter:
        raise
    except ApmError as e:
        logger.error(f"Add failed: {e}")
        sys.exit(exit_code_for(e))
    except Exception as e:
        logger.error(f"Add failed: {str(e)}")
        sys.exit(EXIT_FAILURE)


@main.command(name="list")
@click.argument("url")
@click.pass_obj
def list_versions(obj: Context, url: str):
    """List tags and branches of a remote repository."""
    try:
        for version in GitRemote(obj.download).list_versions(obj.url(url)):
            click.echo(version)
    except ApmError as e:
        logger.error(f"List failed: {e}")
        sys.exit(exit_code_for(e))


if __name__ == "__main__":
    main()
