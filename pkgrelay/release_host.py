"""GitHub release lookups and asset URLs."""

import logging

import requests
from github import Auth, Github, GithubException, UnknownObjectException

from pkgrelay.errors import ReleaseCheckError, ReleaseNotFoundError
from pkgrelay.models import Version

logger = logging.getLogger(__name__)

GITHUB_URL = "https://github.com"


class ReleaseHost:
    """Resolves tagged releases of a GitHub repository."""

    def __init__(self, repository: str, token: str | None = None, client: Github | None = None):
        """Initialize the release host.

        Args:
            repository: Repository in "owner/name" form
            token: GitHub token; anonymous access is used when empty
            client: Pre-built PyGithub client
        """
        self.repository = repository
        if client is not None:
            self.client = client
        elif token:
            self.client = Github(auth=Auth.Token(token))
        else:
            self.client = Github()

    def ensure_release(self, version: Version) -> None:
        """Confirm the release for a version exists.

        Raises:
            ReleaseNotFoundError: If the repository has no release for the tag
            ReleaseCheckError: If the API call fails for another reason,
                such as bad credentials, rate limiting or a network error
        """
        logger.info(f"Checking GitHub release {version.tag} in {self.repository}")
        try:
            release = self.client.get_repo(self.repository).get_release(version.tag)
        except UnknownObjectException as e:
            logger.error(f"GitHub release {version.tag} not found")
            raise ReleaseNotFoundError(self.repository, version.tag) from e
        except GithubException as e:
            logger.error(f"Failed to query GitHub release {version.tag}: {e}")
            message = e.data.get("message") if isinstance(e.data, dict) else None
            raise ReleaseCheckError(
                self.repository, version.tag, message or str(e), status=e.status
            ) from e
        except requests.RequestException as e:
            logger.error(f"Failed to reach GitHub for release {version.tag}: {e}")
            raise ReleaseCheckError(self.repository, version.tag, str(e)) from e
        logger.info(f"Found release {release.tag_name}")

    def source_url(self, version: Version) -> str:
        """Archive URL of the tagged source tree, as referenced by AUR."""
        return f"{GITHUB_URL}/{self.repository}/archive/{version.tag}.tar.gz"

    def source_tag_url(self, version: Version) -> str:
        """Fully-qualified tag archive URL, as referenced by Homebrew."""
        return f"{GITHUB_URL}/{self.repository}/archive/refs/tags/{version.tag}.tar.gz"

    def binary_asset_name(self, package: str, version: Version, arch: str) -> str:
        return f"{package}_{version}_{arch}.tar.gz"

    def binary_url(self, package: str, version: Version, arch: str) -> str:
        return (
            f"{GITHUB_URL}/{self.repository}/releases/download/{version.tag}/"
            f"{self.binary_asset_name(package, version, arch)}"
        )
