"""Disposable container environments for package builds.

A build runs in two phases: a privileged provisioning phase that installs the
distribution toolchain as root, and an execution phase that compiles and
packages under the target's build identity. Every container command names the
identity it runs as; nothing depends on the image's default user or on the
host's current directory.
"""

import logging
import shlex
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from pkgrelay.process import CommandResult, CommandRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A user inside the build container."""

    name: str

    @property
    def privileged(self) -> bool:
        return self.name == "root"

    @property
    def home(self) -> PurePosixPath:
        if self.privileged:
            return PurePosixPath("/root")
        return PurePosixPath("/home") / self.name


ROOT = Identity("root")


@dataclass(frozen=True)
class StagingArea:
    """A build directory on the host and its location inside the container."""

    host_dir: Path
    container_dir: PurePosixPath

    def container_path(self, *parts: str) -> str:
        return str(self.container_dir.joinpath(*parts))

    def host_path(self, *parts: str) -> Path:
        return self.host_dir.joinpath(*parts)


class ContainerEnvironment:
    """A throwaway docker container driven through the docker CLI.

    Use as a context manager so the container is removed even when a step
    fails::

        with ContainerEnvironment("debian:bookworm-slim", runner) as env:
            env.run("apt-get update", ROOT)
    """

    def __init__(
        self,
        image: str,
        runner: CommandRunner,
        name: str | None = None,
        docker: str = "docker",
    ):
        self.image = image
        self.runner = runner
        self.name = name or f"pkgrelay-{uuid.uuid4().hex[:12]}"
        self.docker = docker
        self.started = False

    def __enter__(self) -> "ContainerEnvironment":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.teardown()

    def start(self) -> CommandResult:
        logger.info(f"Starting container {self.name} from {self.image}")
        result = self.runner.run(
            [
                self.docker, "run", "--detach", "--name", self.name,
                "--user", "root", "--entrypoint", "tail",
                self.image, "-f", "/dev/null",
            ]
        )
        self.started = True
        return result

    def run(
        self,
        script: str,
        identity: Identity,
        workdir: str | None = None,
        env: dict[str, str] | None = None,
        check: bool = True,
    ) -> CommandResult:
        """Run a shell script in the container as the given identity."""
        argv = [self.docker, "exec", "--user", identity.name]
        argv += ["--env", f"HOME={identity.home}"]
        for key, value in (env or {}).items():
            argv += ["--env", f"{key}={value}"]
        if workdir:
            argv += ["--workdir", workdir]
        argv += [self.name, "sh", "-c", script]
        logger.debug(f"[{self.name}] ({identity.name}) {script}")
        return self.runner.run(argv, check=check)

    def copy_in(self, host_path: Path, container_path: str, owner: Identity = ROOT) -> None:
        """Copy a host directory's contents into the container."""
        self.run(f"mkdir -p {shlex.quote(container_path)}", ROOT)
        self.runner.run(
            [self.docker, "cp", f"{host_path}/.", f"{self.name}:{container_path}"]
        )
        if not owner.privileged:
            self.run(
                f"chown -R {owner.name}:{owner.name} {shlex.quote(container_path)}",
                ROOT,
            )

    def copy_out(self, container_path: str, host_path: Path) -> Path:
        """Copy one file out of the container."""
        host_path.parent.mkdir(parents=True, exist_ok=True)
        self.runner.run([self.docker, "cp", f"{self.name}:{container_path}", str(host_path)])
        return host_path

    def teardown(self) -> None:
        if not self.started:
            return
        logger.info(f"Removing container {self.name}")
        self.runner.run([self.docker, "rm", "--force", self.name], check=False)
        self.started = False
