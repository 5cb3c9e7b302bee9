"""Abstract base class for packaging format handlers."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path, PurePosixPath

from pkgrelay.build_environment import ROOT, ContainerEnvironment, Identity, StagingArea
from pkgrelay.config_manager import TOOLCHAIN_RUSTUP, ProjectConfig, TargetConfig
from pkgrelay.errors import (
    BuildError,
    CommandError,
    CommandTimeoutError,
    InvalidVersionError,
    ToolNotFoundError,
)
from pkgrelay.models import BuildResult, BuildStep, FailureCategory, Version
from pkgrelay.process import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

RUSTUP_INSTALL = (
    "curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs"
    " | sh -s -- -y --default-toolchain stable --profile minimal"
)
SYSTEM_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

EnvironmentFactory = Callable[[str, CommandRunner], ContainerEnvironment]


class PackageHandler(ABC):
    """Base class for packaging format handlers.

    Each format (deb, rpm, apk, arch) implements this interface to describe
    its own metadata file and native packaging command. The build steps
    themselves are shared and run in the order defined by build().

    Attributes:
        config: Target configuration loaded from YAML
        project: Metadata about the packaged application
        runner: Command runner used for every docker invocation
    """

    format: str = ""
    extension: str = ""
    # Native tools that must exist once provisioning has finished
    required_tools: tuple[str, ...] = ()

    def __init__(
        self,
        config: TargetConfig,
        project: ProjectConfig,
        runner: CommandRunner,
        environment_factory: EnvironmentFactory = ContainerEnvironment,
    ) -> None:
        self.config = config
        self.project = project
        self.runner = runner
        self.environment_factory = environment_factory
        self.identity = Identity(config.build_user)

    @property
    def name(self) -> str:
        return self.config.format

    def artifact_name(self, version: Version) -> str:
        """Output file name: <pkg>_<version>-<release>_<arch>.<ext>."""
        return (
            f"{self.project.package_name}_{version}-{self.config.release}"
            f"_{self.config.architecture}.{self.extension}"
        )

    def package_version(self, version: Version) -> str:
        """Version string as the native package manager expects it."""
        return version.tilde()

    def build_env(self) -> dict[str, str]:
        """Environment for unprivileged build and packaging commands."""
        path = SYSTEM_PATH
        if self.config.toolchain == TOOLCHAIN_RUSTUP:
            path = f"{self.identity.home}/.cargo/bin:{path}"
        return {"PATH": path, "CARGO_TERM_COLOR": "never"}

    def staging_area(self, work_dir: Path, version: Version) -> StagingArea:
        host_dir = work_dir / self.name
        host_dir.mkdir(parents=True, exist_ok=True)
        return StagingArea(
            host_dir=host_dir,
            container_dir=PurePosixPath(self.identity.home)
            / "build"
            / f"{self.project.package_name}-{version}",
        )

    @abstractmethod
    def generate_metadata(self, version: Version, staging: StagingArea) -> dict[str, str]:
        """Produce the format's metadata files.

        Args:
            version: Version being packaged
            staging: Staging area the files will be placed in

        Returns:
            Mapping of path relative to the staging directory to file content
        """

    @abstractmethod
    def package_commands(self, version: Version, staging: StagingArea) -> list[str]:
        """Shell commands that invoke the native packaging tool."""

    @abstractmethod
    def locate_artifact(
        self, env: ContainerEnvironment, version: Version, staging: StagingArea
    ) -> str:
        """Return the container path of the package the tool produced."""

    def find_one(
        self, env: ContainerEnvironment, search_dir: str, pattern: str
    ) -> str:
        """Find exactly one file matching a glob pattern inside the container."""
        result = env.run(
            f"find {search_dir} -type f -name '{pattern}'", self.identity
        )
        matches = [line for line in result.stdout.splitlines() if line.strip()]
        if len(matches) != 1:
            raise BuildError(
                self.name,
                FailureCategory.PACKAGING,
                f"Expected one package matching {pattern} in {search_dir}, found {len(matches)}",
            )
        return matches[0].strip()

    def write_metadata(self, version: Version, staging: StagingArea) -> Path:
        """Write the generated metadata files into the host staging area."""
        metadata_dir = staging.host_path("metadata")
        for relative, content in self.generate_metadata(version, staging).items():
            target = metadata_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        return metadata_dir

    def build(self, source_tree: Path, version: Version, work_dir: Path) -> BuildResult:
        """Build one package for this format.

        Failures never propagate: they are recorded in the returned
        BuildResult together with the trace of the steps that ran.

        Args:
            source_tree: Root of the application source tree
            version: Version being packaged
            work_dir: Host scratch directory shared by all targets

        Returns:
            BuildResult with the exported artifact path or the failure
        """
        result = BuildResult(target=self.name, version=str(version))
        staging = self.staging_area(work_dir, version)
        env = self.environment_factory(self.config.image, self.runner)
        build_dir = staging.container_path()

        logger.info(f"Building {self.name} package for version {version}")

        try:
            self._step(
                result, "version", FailureCategory.PACKAGING,
                lambda: self.package_version(version),
            )
            self._step(result, "start", FailureCategory.PROVISION, env.start)

            for command in self.config.provision:
                self._step(
                    result, "provision", FailureCategory.PROVISION,
                    lambda command=command: env.run(command, ROOT),
                )

            for tool in self.required_tools:
                self._step(
                    result, f"check {tool}", FailureCategory.MISSING_TOOL,
                    lambda tool=tool: env.run(f"command -v {tool}", ROOT),
                )

            if self.config.toolchain == TOOLCHAIN_RUSTUP:
                self._step(
                    result, "toolchain", FailureCategory.PROVISION,
                    lambda: env.run(RUSTUP_INSTALL, self.identity),
                )
            self._step(
                result, "check cargo", FailureCategory.MISSING_TOOL,
                lambda: env.run("command -v cargo", self.identity, env=self.build_env()),
            )

            self._step(
                result, "stage sources", FailureCategory.PROVISION,
                lambda: env.copy_in(source_tree, build_dir, owner=self.identity),
            )

            self._step(
                result, "compile", FailureCategory.COMPILE,
                lambda: env.run(
                    "cargo build --release --locked",
                    self.identity,
                    workdir=build_dir,
                    env=self.build_env(),
                ),
            )

            self._step(
                result, "test", FailureCategory.COMPILE,
                lambda: env.run(
                    "cargo test --locked",
                    self.identity,
                    workdir=build_dir,
                    env=self.build_env(),
                ),
            )

            metadata_dir = self._step(
                result, "write metadata", FailureCategory.PACKAGING,
                lambda: self.write_metadata(version, staging),
            )
            self._step(
                result, "metadata", FailureCategory.PACKAGING,
                lambda: env.copy_in(metadata_dir, build_dir, owner=self.identity),
            )

            for command in self.package_commands(version, staging):
                self._step(
                    result, "package", FailureCategory.PACKAGING,
                    lambda command=command: env.run(
                        command, self.identity, workdir=build_dir, env=self.build_env()
                    ),
                )

            produced = self._step(
                result, "locate", FailureCategory.PACKAGING,
                lambda: self.locate_artifact(env, version, staging),
            )
            exported = self._step(
                result, "export", FailureCategory.PACKAGING,
                lambda: env.copy_out(produced, staging.host_path(self.artifact_name(version))),
            )

            result.artifact_path = exported
            logger.info(f"Built {self.name} package {exported.name}")

        except BuildError as e:
            result.error = str(e)
            result.category = FailureCategory(e.category)
            logger.error(f"Build failed for {self.name} ({e.category}): {e}")
        finally:
            try:
                env.teardown()
            except CommandError as e:
                logger.warning(f"Failed to remove build container for {self.name}: {e}")

        return result

    def _step(self, result: BuildResult, name: str, category: FailureCategory, action):
        """Run one build step, recording it in the trace.

        Command and host file errors become BuildError with the category of
        the step, except for missing executables and timeouts which keep
        their own.
        """
        try:
            value = action()
        except ToolNotFoundError as e:
            self._record(result, name, e.argv, e.returncode, e.stderr)
            raise BuildError(self.name, FailureCategory.MISSING_TOOL, str(e), e.argv, e.returncode) from e
        except CommandTimeoutError as e:
            self._record(result, name, e.argv, e.returncode, e.stderr)
            raise BuildError(self.name, FailureCategory.TIMEOUT, str(e), e.argv, e.returncode) from e
        except CommandError as e:
            self._record(result, name, e.argv, e.returncode, e.stderr)
            raise BuildError(self.name, category, str(e), e.argv, e.returncode) from e
        except OSError as e:
            self._record(result, name, [], 1, str(e))
            raise BuildError(self.name, category, f"{name}: {e}") from e
        except InvalidVersionError as e:
            self._record(result, name, [], 1, str(e))
            raise BuildError(self.name, category, str(e)) from e

        if isinstance(value, CommandResult):
            self._record(result, name, value.argv, value.returncode, value.output_tail())
        else:
            result.trace.append(BuildStep(name=name, command=[], returncode=0))
        return value

    @staticmethod
    def _record(result: BuildResult, name: str, argv: list[str], returncode: int, output: str) -> None:
        result.trace.append(
            BuildStep(name=name, command=list(argv), returncode=returncode, output_tail=output)
        )
