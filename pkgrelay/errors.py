"""Exception hierarchy for the package build and release tooling."""


class PkgRelayError(Exception):
    """Base class for all pkgrelay errors."""


class ConfigError(PkgRelayError):
    """Raised when configuration files or environment settings are invalid."""


class InvalidVersionError(PkgRelayError):
    """Raised when a version string is not a semantic version."""


class CommandError(PkgRelayError):
    """An external command exited with a non-zero status."""

    def __init__(self, argv: list[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        tail = stderr.strip().splitlines()[-1:] if stderr else []
        detail = f": {tail[0]}" if tail else ""
        super().__init__(
            f"Command {' '.join(self.argv)!r} exited with status {returncode}{detail}"
        )


class CommandTimeoutError(CommandError):
    """An external command exceeded its timeout and was killed."""

    def __init__(self, argv: list[str], timeout: float):
        self.timeout = timeout
        super().__init__(argv, returncode=-1, stderr=f"timed out after {timeout}s")


class ToolNotFoundError(CommandError):
    """The executable for an external command is not installed."""

    def __init__(self, argv: list[str]):
        super().__init__(argv, returncode=127, stderr=f"{argv[0]}: command not found")


class BuildError(PkgRelayError):
    """A packaging target failed during one of its build steps."""

    def __init__(
        self,
        target: str,
        category: str,
        message: str,
        command: list[str] | None = None,
        returncode: int | None = None,
    ):
        self.target = target
        self.category = category
        self.command = command
        self.returncode = returncode
        super().__init__(message)


class ReleaseNotFoundError(PkgRelayError):
    """The hosted release for a tag does not exist."""

    def __init__(self, repository: str, tag: str):
        self.repository = repository
        self.tag = tag
        self.remediation = (
            f"Tag and push first:  git tag {tag} && git push origin master {tag}"
        )
        super().__init__(f"GitHub release {tag} not found in {repository}")


class ReleaseCheckError(PkgRelayError):
    """The release host failed to answer a release lookup."""

    def __init__(self, repository: str, tag: str, message: str, status: int | None = None):
        self.repository = repository
        self.tag = tag
        self.status = status
        if status in (401, 403):
            self.remediation = "Check that GITHUB_TOKEN is valid and has not hit the API rate limit"
        else:
            self.remediation = "Check network access to api.github.com and the GITHUB_TOKEN setting"
        where = f"HTTP {status}" if status is not None else "no response"
        super().__init__(f"Could not check GitHub release {tag} in {repository} ({where}): {message}")


class DownloadError(PkgRelayError):
    """A release asset could not be downloaded."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Failed to download {url}: {message}")


class IncompleteDownloadError(DownloadError):
    """A download finished with fewer bytes than the server announced."""

    def __init__(self, url: str, expected: int | None, received: int):
        self.expected = expected
        self.received = received
        if expected is None:
            message = "empty response body"
        else:
            message = f"received {received} of {expected} bytes"
        super().__init__(url, message)


class ChecksumError(PkgRelayError):
    """A checksum could not be computed or does not look like one."""


class RenderError(PkgRelayError):
    """A manifest template could not be rendered."""

    def __init__(self, template: str, message: str):
        self.template = template
        super().__init__(f"{template}: {message}")
