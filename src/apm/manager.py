"""Install orchestration: validate, cache, link, one package at a time."""
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from apm.core.errors import ApmError, StorageError
from apm.git.remote import DownloadOptions
from apm.links import LinkPlanner
from apm.models import Package
from apm.storage.cache import ContentCache, StagingSession

logger = logging.getLogger(__name__)


class InstallOptions(BaseModel):
    workdir: Path = Field(default=Path("."), description="Project root holding the .apm directory")
    force: bool = Field(default=False, description="Fetch even if the package is cached")
    once_download: bool = Field(
        default=True,
        description="After the first clone, switch revision for later packages of the same URL",
    )
    fail_fast: bool = Field(default=True, description="Stop at the first failing package")
    download: DownloadOptions = Field(default_factory=DownloadOptions)


class InstalledPackage(BaseModel):
    package: Package
    fingerprint: str
    cache_path: Path
    fetched: bool
    links: List[Path] = Field(default_factory=list)


class FailedPackage(BaseModel):
    package: Package
    error: str


class InstallReport(BaseModel):
    installed: List[InstalledPackage] = Field(default_factory=list)
    failed: List[FailedPackage] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class Manager:
    """Installs batches of packages into a working directory.

    Packages are processed sequentially in input order and share one staging
    session, so a Manager must not run two batches concurrently.
    """

    def __init__(self, cache: Optional[ContentCache] = None) -> None:
        self.cache = cache or ContentCache()

    def install(self, pkgs: Sequence[Package], options: Optional[InstallOptions] = None) -> InstallReport:
        """Install `pkgs` and return what was installed and what failed.

        With `fail_fast` the first package error is re-raised; packages
        installed before it stay in place. Otherwise failures are logged and
        collected in the report. StorageError always aborts the batch.
        """
        options = options or InstallOptions()
        planner = LinkPlanner(options.workdir, relative_storage=self.cache.relative)
        report = InstallReport()

        self.cache.make_storage()

        with StagingSession(allow_switch=options.once_download) as session:
            for raw in pkgs:
                logger.info(f"Installing a package: {raw.describe()}")
                try:
                    installed = self._install_one(raw, planner, session, options)
                except StorageError as e:
                    logger.error(f"Storage failure while installing {raw.describe()}: {e}")
                    raise
                except ApmError as e:
                    if options.fail_fast:
                        logger.error(f"Failed to install {raw.describe()}: {e}")
                        raise
                    logger.warning(f"Skipping {raw.describe()}: {e}")
                    report.failed.append(FailedPackage(package=raw, error=str(e)))
                    continue

                report.installed.append(installed)
                logger.info(f"The package is installed: {installed.package.describe()}")

        return report

    def _install_one(
        self,
        raw: Package,
        planner: LinkPlanner,
        session: StagingSession,
        options: InstallOptions,
    ) -> InstalledPackage:
        pkg = raw.validated()
        cached = self.cache.ensure_cached(pkg, session, force=options.force, options=options.download)
        links = planner.apply(pkg, cached.path)
        return InstalledPackage(
            package=pkg,
            fingerprint=cached.key.fingerprint,
            cache_path=cached.path,
            fetched=cached.fetched,
            links=links,
        )
