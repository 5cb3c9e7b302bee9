"""Propagates a released version into every downstream repository."""

import logging

from pkgrelay.config import OperationLogger
from pkgrelay.config_manager import DownstreamConfig, ProjectConfig
from pkgrelay.downstream_publisher import DownstreamPublisher
from pkgrelay.errors import (
    ChecksumError,
    DownloadError,
    ReleaseCheckError,
    ReleaseNotFoundError,
    RenderError,
)
from pkgrelay.manifest_renderer import ManifestRenderer, RenderedManifest
from pkgrelay.models import (
    PublishReport,
    PublishResult,
    PublishStatus,
    ReleaseArtifacts,
    RepoState,
    Version,
)
from pkgrelay.package_downloader import PackageDownloader
from pkgrelay.release_host import ReleaseHost

logger = logging.getLogger(__name__)


class ReleasePublisher:
    """Fetch → render → publish for one version.

    The hosted release is checked before anything else; when it is missing
    no asset is downloaded and no downstream repository is contacted.
    """

    def __init__(
        self,
        project: ProjectConfig,
        host: ReleaseHost,
        downloader: PackageDownloader,
        renderer: ManifestRenderer,
        publisher: DownstreamPublisher,
        operation_logger: OperationLogger | None = None,
    ):
        self.project = project
        self.host = host
        self.downloader = downloader
        self.renderer = renderer
        self.publisher = publisher
        self.operations = operation_logger or OperationLogger()

    def fetch(self, version: Version) -> ReleaseArtifacts:
        """Check the release exists and download its assets.

        Raises:
            ReleaseNotFoundError: If the release does not exist
            ReleaseCheckError: If the release host cannot be queried
            DownloadError: If an asset cannot be downloaded
            ChecksumError: If a checksum cannot be computed
        """
        self.operations.start_operation("release_check", tag=version.tag)
        try:
            self.host.ensure_release(version)
        except (ReleaseNotFoundError, ReleaseCheckError) as e:
            self.operations.log_error("release_check", e, tag=version.tag)
            self.operations.complete_operation("release_check", success=False)
            raise
        self.operations.complete_operation("release_check", success=True)

        self.operations.start_operation("asset_download", version=str(version))
        try:
            artifacts = self.downloader.fetch_release(
                version, self.host, self.project.package_name, self.project.binary_architectures
            )
        except (DownloadError, ChecksumError) as e:
            self.operations.log_error("asset_download", e, version=str(version))
            self.operations.complete_operation("asset_download", success=False)
            raise
        self.operations.complete_operation(
            "asset_download", success=True, files=1 + len(artifacts.binaries)
        )
        return artifacts

    def render(
        self, artifacts: ReleaseArtifacts, repos: list[DownstreamConfig]
    ) -> tuple[dict[str, RenderedManifest], list[PublishResult]]:
        """Render every repository's manifest.

        Returns:
            Rendered manifests keyed by repository name, and a render-failed
            result for every repository whose manifest could not be rendered
        """
        manifests = {}
        failures = []
        for repo in repos:
            try:
                manifests[repo.name] = self.renderer.render(artifacts, repo)
            except RenderError as e:
                logger.error(f"Failed to render manifest for {repo.name}: {e}")
                failures.append(
                    PublishResult(
                        repo=repo.name,
                        status=PublishStatus.RENDER_FAILED,
                        state=RepoState.UNATTEMPTED,
                        detail=str(e),
                    )
                )
        return manifests, failures

    def publish(self, version: Version, repos: list[DownstreamConfig]) -> PublishReport:
        """Run the whole publish stage for a version.

        Returns:
            PublishReport with one result per repository

        Raises:
            ReleaseNotFoundError: If the release does not exist
            ReleaseCheckError: If the release host cannot be queried
            DownloadError: If an asset cannot be downloaded
        """
        logger.info(f"==> Publishing {self.project.package_name} {version} ({version.tag})")
        artifacts = self.fetch(version)

        self.operations.start_operation("manifest_render", repos=len(repos))
        manifests, failures = self.render(artifacts, repos)
        self.operations.complete_operation(
            "manifest_render", success=not failures, rendered=len(manifests)
        )

        self.operations.start_operation("downstream_publish", repos=len(manifests))
        renderable = [repo for repo in repos if repo.name in manifests]
        published = self.publisher.publish_all(
            renderable, manifests, version, self.project.package_name
        )
        self.operations.complete_operation("downstream_publish", success=True)

        by_repo = {result.repo: result for result in [*published, *failures]}
        report = PublishReport(
            version=str(version), results=[by_repo[repo.name] for repo in repos]
        )
        logger.info(f"==> Done publishing {self.project.package_name} {version}")
        return report
