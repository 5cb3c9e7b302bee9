"""Publishes rendered manifests to downstream git repositories."""

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from pkgrelay.config_manager import DownstreamConfig
from pkgrelay.errors import CommandError
from pkgrelay.manifest_renderer import RenderedManifest
from pkgrelay.models import PublishResult, PublishStatus, RepoState, Version
from pkgrelay.process import CommandRunner

logger = logging.getLogger(__name__)

# Never block on a password prompt when credentials are missing
NON_INTERACTIVE_GIT = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_SSH_COMMAND": "ssh -o BatchMode=yes -o ConnectTimeout=15",
}


@dataclass(frozen=True)
class AccessCheck:
    """Whether a remote can be reached with the credentials at hand."""

    ok: bool
    reason: str = ""


class DownstreamPublisher:
    """Clones each downstream repository, applies manifests, commits and pushes.

    A repository that cannot be cloned is skipped, a repository whose owned
    files already match HEAD is left alone, and a failed push is reported
    without affecting the other repositories.
    """

    def __init__(
        self,
        runner: CommandRunner,
        work_dir: Path,
        git: str = "git",
        parallel: bool = False,
        author_name: str | None = None,
        author_email: str | None = None,
    ):
        """Initialize the publisher.

        Args:
            runner: Command runner for git invocations
            work_dir: Directory receiving one clone per repository
            git: git executable
            parallel: Publish to all repositories concurrently
            author_name: Commit author name; git configuration is used when unset
            author_email: Commit author email; git configuration is used when unset
        """
        self.runner = runner
        self.work_dir = Path(work_dir)
        self.git = git
        self.parallel = parallel
        self.author_name = author_name
        self.author_email = author_email

    def publish_all(
        self,
        repos: list[DownstreamConfig],
        manifests: dict[str, RenderedManifest],
        version: Version,
        package: str,
    ) -> list[PublishResult]:
        """Publish to every repository that has a rendered manifest.

        Args:
            repos: Downstream repositories to update
            manifests: Rendered manifests keyed by repository name
            version: Version being published
            package: Application package name for commit messages

        Returns:
            One PublishResult per repository, in the order given
        """
        self.work_dir.mkdir(parents=True, exist_ok=True)

        if self.parallel and len(repos) > 1:
            with ThreadPoolExecutor(max_workers=len(repos)) as pool:
                futures = [
                    pool.submit(self.publish, repo, manifests[repo.name], version, package)
                    for repo in repos
                ]
                return [future.result() for future in futures]

        return [self.publish(repo, manifests[repo.name], version, package) for repo in repos]

    def check_access(self, repo: DownstreamConfig) -> AccessCheck:
        """Probe the remote before cloning."""
        try:
            self._git(["ls-remote", "--heads", repo.remote])
        except CommandError as e:
            return AccessCheck(ok=False, reason=str(e))
        return AccessCheck(ok=True)

    def publish(
        self,
        repo: DownstreamConfig,
        manifest: RenderedManifest,
        version: Version,
        package: str,
    ) -> PublishResult:
        """Publish rendered manifests to one repository.

        Returns:
            PublishResult with the terminal state of the repository
        """
        logger.info(f"--- Updating {repo.name} ...")
        clone_dir = self.work_dir / repo.name

        access = self.check_access(repo)
        if not access.ok:
            logger.warning(f"Could not reach {repo.name} (missing credentials?), skipping: {access.reason}")
            return PublishResult(
                repo=repo.name,
                status=PublishStatus.SKIPPED_NO_CREDS,
                state=RepoState.CLONE_FAILED,
                detail=access.reason,
            )

        if clone_dir.exists():
            shutil.rmtree(clone_dir)
        try:
            self._git(["clone", repo.remote, str(clone_dir)])
        except CommandError as e:
            logger.warning(f"Could not clone {repo.name}, skipping: {e}")
            return PublishResult(
                repo=repo.name,
                status=PublishStatus.SKIPPED_NO_CREDS,
                state=RepoState.CLONE_FAILED,
                detail=str(e),
            )

        for relative, staged in manifest.files.items():
            destination = clone_dir / relative
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(staged, destination)

        try:
            self._git(["add", "--", *manifest.files], cwd=clone_dir)
            diff = self._git(["diff", "--cached", "--quiet"], cwd=clone_dir, check=False)
        except CommandError as e:
            logger.error(f"Failed to stage changes for {repo.name}: {e}")
            return PublishResult(
                repo=repo.name,
                status=PublishStatus.COMMIT_FAILED,
                state=RepoState.CLONED,
                detail=str(e),
            )

        if diff.returncode == 0:
            logger.info(f"  (no changes in {repo.name}, skipping)")
            return PublishResult(
                repo=repo.name,
                status=PublishStatus.SKIPPED_NO_CHANGE,
                state=RepoState.UNCHANGED,
            )

        message = repo.commit_message.format(
            name=repo.name,
            package=package,
            version=version,
            pkgrel=repo.pkgrel,
            tag=version.tag,
        )
        try:
            self._git([*self._identity_args(), "commit", "-m", message], cwd=clone_dir)
            commit = self._git(["rev-parse", "HEAD"], cwd=clone_dir).stdout.strip()
        except CommandError as e:
            logger.error(f"Failed to commit to {repo.name}: {e}")
            return PublishResult(
                repo=repo.name,
                status=PublishStatus.COMMIT_FAILED,
                state=RepoState.STAGED,
                detail=str(e),
            )

        try:
            self._git(["push", "origin", f"HEAD:{repo.branch}"], cwd=clone_dir)
        except CommandError as e:
            # The local commit stays in the clone for inspection
            logger.error(f"Failed to push {repo.name}: {e}")
            return PublishResult(
                repo=repo.name,
                status=PublishStatus.PUSH_FAILED,
                state=RepoState.PUSH_FAILED,
                commit=commit,
                detail=str(e),
            )

        logger.info(f"  pushed {repo.name} ({commit[:12]})")
        return PublishResult(
            repo=repo.name,
            status=PublishStatus.PUSHED,
            state=RepoState.PUSHED,
            commit=commit,
            detail=message,
        )

    def _identity_args(self) -> list[str]:
        args = []
        if self.author_name:
            args += ["-c", f"user.name={self.author_name}"]
        if self.author_email:
            args += ["-c", f"user.email={self.author_email}"]
        return args

    def _git(self, args: list[str], cwd: Path | None = None, check: bool = True):
        return self.runner.run([self.git, *args], cwd=cwd, env=NON_INTERACTIVE_GIT, check=check)
