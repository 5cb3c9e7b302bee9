"""Runs every packaging target and collects the results."""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from pkgrelay.artifact_collector import ArtifactCollector
from pkgrelay.models import BuildReport, BuildResult, FailureCategory, Version
from pkgrelay.package_handlers import PackageHandler

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """Drives independent package builds and joins them before collection.

    Targets share no state, so they may run in parallel; the collector only
    runs once every target has reached a terminal result.
    """

    def __init__(
        self,
        handlers: list[PackageHandler],
        collector: ArtifactCollector,
        work_dir: Path,
        parallel: bool = False,
        max_workers: int | None = None,
    ):
        self.handlers = handlers
        self.collector = collector
        self.work_dir = Path(work_dir)
        self.parallel = parallel
        self.max_workers = max_workers or len(handlers) or 1

    def run(self, source_tree: Path, version: Version) -> BuildReport:
        """Build every target for a version.

        Args:
            source_tree: Root of the application source tree
            version: Version being packaged

        Returns:
            BuildReport with one result per target and the collection summary
        """
        logger.info(
            f"Building {len(self.handlers)} target(s) for {version} "
            f"({'parallel' if self.parallel else 'sequential'})"
        )
        self.work_dir.mkdir(parents=True, exist_ok=True)

        if self.parallel and len(self.handlers) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = [
                    pool.submit(self._build_one, handler, source_tree, version)
                    for handler in self.handlers
                ]
                results = [future.result() for future in futures]
        else:
            results = [
                self._build_one(handler, source_tree, version)
                for handler in self.handlers
            ]

        collection = self.collector.collect(results)
        report = BuildReport(version=str(version), results=results, collection=collection)

        # Artifacts that could not be collected count as failed targets
        for result in report.results:
            if result.succeeded and result.target in collection.failed:
                result.error = collection.failed[result.target]
                result.category = FailureCategory.PACKAGING

        logger.info(
            f"Build finished for {version}: {len(report.succeeded)} succeeded, "
            f"{len(report.failed)} failed"
        )
        return report

    def _build_one(self, handler: PackageHandler, source_tree: Path, version: Version) -> BuildResult:
        try:
            return handler.build(source_tree, version, self.work_dir)
        except Exception as e:
            # A handler bug must not take the other targets down with it
            logger.exception(f"Unexpected error building {handler.name}")
            return BuildResult(
                target=handler.name,
                version=str(version),
                error=f"{type(e).__name__}: {e}",
                category=FailureCategory.PACKAGING,
            )
