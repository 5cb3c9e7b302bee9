"""Data models for the package build and release tooling."""

import re
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pkgrelay.errors import InvalidVersionError

_SEMVER = re.compile(
    r"^(?P<release>(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*))"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
# Pre-release suffixes apk-tools understands, in ascending order
_APK_PRERELEASE = re.compile(r"^(alpha|beta|pre|rc)\.?(\d*)$")


@dataclass(frozen=True)
class Version:
    """A resolved release version and its git tag.

    Distribution package managers do not accept semver pre-releases as
    written: tilde() and apk() give the forms they sort correctly.
    """

    value: str

    def __post_init__(self):
        if not _SEMVER.match(self.value):
            raise InvalidVersionError(f"Not a semantic version: {self.value!r}")

    @property
    def tag(self) -> str:
        return f"v{self.value}"

    @property
    def release(self) -> str:
        return _SEMVER.match(self.value).group("release")

    @property
    def prerelease(self) -> str | None:
        return _SEMVER.match(self.value).group("prerelease")

    def tilde(self) -> str:
        """Version for dpkg, rpm and pacman, e.g. 1.2.3-rc.1 -> 1.2.3~rc.1.

        "~" sorts before the bare release in all three. Build metadata is
        dropped and "-" inside the pre-release becomes "_".
        """
        if not self.prerelease:
            return self.release
        return f"{self.release}~{self.prerelease.replace('-', '_')}"

    def apk(self) -> str:
        """Version for apk-tools, e.g. 1.2.3-rc.1 -> 1.2.3_rc1.

        Raises:
            InvalidVersionError: If the pre-release is not alpha, beta, pre
                or rc with an optional number
        """
        if not self.prerelease:
            return self.release
        match = _APK_PRERELEASE.match(self.prerelease)
        if not match:
            raise InvalidVersionError(
                f"Pre-release {self.prerelease!r} has no apk equivalent "
                "(use alpha, beta, pre or rc with an optional number)"
            )
        return f"{self.release}_{match.group(1)}{match.group(2)}"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, raw: str) -> "Version":
        """Create a Version from user input, accepting a leading "v"."""
        raw = (raw or "").strip()
        if raw.startswith("v"):
            raw = raw[1:]
        return cls(raw)

    @classmethod
    def from_cargo_toml(cls, path: Path) -> "Version":
        """Read the version from a Cargo manifest.

        Raises:
            FileNotFoundError: If the manifest does not exist
            InvalidVersionError: If no usable version is declared
        """
        with open(path, "rb") as f:
            data = tomllib.load(f)
        version = data.get("package", {}).get("version")
        if not isinstance(version, str):
            raise InvalidVersionError(f"No [package].version in {path}")
        return cls.parse(version)


class ArtifactKind(str, Enum):
    SOURCE = "source"
    BINARY = "binary"


@dataclass(frozen=True)
class Artifact:
    """A downloaded release asset with its checksums."""

    name: str
    path: Path
    kind: ArtifactKind
    url: str
    size: int
    checksums: dict[str, str]
    arch: str | None = None

    def checksum(self, algorithm: str) -> str:
        return self.checksums[algorithm]


@dataclass(frozen=True)
class ReleaseArtifacts:
    """Every asset fetched for one version."""

    version: Version
    source: Artifact
    binaries: dict[str, Artifact]


class FailureCategory(str, Enum):
    MISSING_TOOL = "missing-tool"
    PROVISION = "provision"
    COMPILE = "compile"
    PACKAGING = "packaging"
    TIMEOUT = "timeout"


@dataclass
class BuildStep:
    """One recorded command in a target's build trace."""

    name: str
    command: list[str]
    returncode: int
    output_tail: str = ""


@dataclass
class BuildResult:
    """Outcome of building one packaging target."""

    target: str
    version: str
    artifact_path: Path | None = None
    error: str | None = None
    category: FailureCategory | None = None
    trace: list[BuildStep] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.artifact_path is not None and self.error is None


@dataclass
class CollectionReport:
    """Files gathered into the output directory and targets that failed."""

    output_dir: Path
    produced: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class ExitPolicy(str, Enum):
    """How partial failure maps onto the process exit status."""

    DEGRADED = "degraded"
    STRICT = "strict"


@dataclass
class BuildReport:
    """Aggregated result of a build run."""

    version: str
    results: list[BuildResult]
    collection: CollectionReport

    @property
    def succeeded(self) -> list[BuildResult]:
        return [r for r in self.results if r.succeeded]

    @property
    def failed(self) -> list[BuildResult]:
        return [r for r in self.results if not r.succeeded]

    @property
    def degraded(self) -> bool:
        return bool(self.succeeded) and bool(self.failed)

    def exit_code(self, policy: ExitPolicy = ExitPolicy.DEGRADED) -> int:
        if not self.succeeded:
            return 1
        if policy == ExitPolicy.STRICT and self.failed:
            return 1
        return 0


class PublishStatus(str, Enum):
    SKIPPED_NO_CREDS = "skipped-no-creds"
    SKIPPED_NO_CHANGE = "skipped-no-change"
    PUSHED = "pushed"
    PUSH_FAILED = "push-failed"
    RENDER_FAILED = "render-failed"
    COMMIT_FAILED = "commit-failed"

    @property
    def is_failure(self) -> bool:
        return self in (
            PublishStatus.PUSH_FAILED,
            PublishStatus.RENDER_FAILED,
            PublishStatus.COMMIT_FAILED,
        )


class RepoState(str, Enum):
    """Lifecycle of one downstream repository during a publish run."""

    UNATTEMPTED = "unattempted"
    CLONE_FAILED = "clone-failed"
    CLONED = "cloned"
    UNCHANGED = "unchanged"
    STAGED = "staged"
    COMMITTED = "committed"
    PUSHED = "pushed"
    PUSH_FAILED = "push-failed"


@dataclass
class PublishResult:
    """Outcome of publishing to one downstream repository."""

    repo: str
    status: PublishStatus
    state: RepoState
    commit: str | None = None
    detail: str = ""


@dataclass
class PublishReport:
    """Aggregated result of a publish run."""

    version: str
    results: list[PublishResult]

    @property
    def commits(self) -> int:
        return sum(1 for r in self.results if r.commit)

    def by_status(self, status: PublishStatus) -> list[PublishResult]:
        return [r for r in self.results if r.status == status]

    def exit_code(self, policy: ExitPolicy = ExitPolicy.DEGRADED) -> int:
        if policy == ExitPolicy.STRICT and any(
            r.status.is_failure for r in self.results
        ):
            return 1
        return 0
