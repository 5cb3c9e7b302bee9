"""Shared test fixtures for pkgrelay."""

import logging
import shlex
import shutil
import subprocess
from pathlib import Path
from unittest.mock import Mock

import pytest

from pkgrelay.config_manager import ConfigManager, DownstreamConfig, ProjectConfig, TargetConfig
from pkgrelay.errors import CommandError, ToolNotFoundError
from pkgrelay.models import Artifact, ArtifactKind, ReleaseArtifacts, Version
from pkgrelay.process import CommandResult

REPO_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


class FakeRunner:
    """Stands in for CommandRunner when driving docker.

    Every command succeeds unless it contains one of the ``fail_on``
    substrings; executables listed in ``missing`` raise ToolNotFoundError.
    ``find`` scripts print one matching path and ``docker cp`` out of a
    container writes a small file on the host.
    """

    def __init__(self, fail_on: tuple[str, ...] = (), missing: tuple[str, ...] = ()):
        self.fail_on = fail_on
        self.missing = missing
        self.calls: list[list[str]] = []

    def run(self, argv, cwd=None, env=None, timeout=None, check=True):
        argv = list(argv)
        self.calls.append(argv)
        if argv[0] in self.missing:
            raise ToolNotFoundError(argv)

        joined = " ".join(argv)
        for pattern in self.fail_on:
            if pattern in joined:
                stderr = f"simulated failure: {pattern}"
                if check:
                    raise CommandError(argv, 1, stderr)
                return CommandResult(argv, 1, "", stderr, 0.0)

        stdout = ""
        if argv[:2] == ["docker", "exec"] and argv[-1].startswith("find "):
            words = shlex.split(argv[-1])
            search_dir, pattern = words[1], words[-1]
            stdout = f"{search_dir}/{pattern.replace('*', 'x86_64')}\n"
        if argv[:2] == ["docker", "cp"] and argv[2].startswith("pkgrelay-"):
            host = Path(argv[3])
            host.parent.mkdir(parents=True, exist_ok=True)
            host.write_bytes(f"package from {argv[2]}".encode())
        return CommandResult(argv, 0, stdout, "", 0.0)

    def scripts(self) -> list[tuple[str, str]]:
        """(identity, script) for every docker exec call."""
        found = []
        for argv in self.calls:
            if argv[:2] == ["docker", "exec"]:
                found.append((argv[argv.index("--user") + 1], argv[-1]))
        return found


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging() replaces the root handlers; put them back after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def config_manager() -> ConfigManager:
    return ConfigManager(str(REPO_CONFIG_DIR))


@pytest.fixture
def project() -> ProjectConfig:
    return ProjectConfig.from_yaml(REPO_CONFIG_DIR / "project.yaml")


@pytest.fixture
def target_configs() -> dict[str, TargetConfig]:
    configs = ConfigManager(str(REPO_CONFIG_DIR)).load_targets()
    return {config.format: config for config in configs}


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    tree = tmp_path / "source"
    tree.mkdir()
    (tree / "Cargo.toml").write_text('[package]\nname = "batdoc"\nversion = "1.2.3"\n')
    (tree / "README.md").write_text("# batdoc\n")
    (tree / "LICENSE").write_text("MIT\n")
    return tree


def make_artifacts(tmp_path: Path, version: Version, seed: bytes = b"") -> ReleaseArtifacts:
    """Release artifacts backed by real files with real checksums."""
    from pkgrelay.package_downloader import compute_checksums

    base = tmp_path / "assets"
    base.mkdir(parents=True, exist_ok=True)

    def artifact(name, kind, arch=None):
        path = base / name
        path.write_bytes(seed + name.encode())
        return Artifact(
            name=name,
            path=path,
            kind=kind,
            url=f"https://example.invalid/{name}",
            size=path.stat().st_size,
            checksums=compute_checksums(path),
            arch=arch,
        )

    return ReleaseArtifacts(
        version=version,
        source=artifact("source.tar.gz", ArtifactKind.SOURCE),
        binaries={
            arch: artifact(f"batdoc_{version}_{arch}.tar.gz", ArtifactKind.BINARY, arch)
            for arch in ("x86_64", "aarch64")
        },
    )


def fake_github(release_exists: bool = True) -> Mock:
    """A PyGithub client whose repository has (or lacks) the release."""
    from github import UnknownObjectException

    client = Mock()
    repo = client.get_repo.return_value
    if release_exists:
        repo.get_release.return_value = Mock(tag_name="v1.2.3")
    else:
        repo.get_release.side_effect = UnknownObjectException(404, {"message": "Not Found"}, None)
    return client


def git(*args: str, cwd: Path | None = None) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


def make_remote(tmp_path: Path, name: str, branch: str = "master") -> Path:
    """Create a bare repository with one initial commit on ``branch``."""
    bare = tmp_path / "remotes" / f"{name}.git"
    bare.parent.mkdir(parents=True, exist_ok=True)
    git("init", "--bare", f"--initial-branch={branch}", str(bare))

    seed = tmp_path / "seed" / name
    git("clone", str(bare), str(seed))
    (seed / "README").write_text(f"{name}\n")
    git("add", "README", cwd=seed)
    git("commit", "-m", "initial", cwd=seed)
    git("push", "origin", f"HEAD:{branch}", cwd=seed)
    return bare


def commit_count(bare: Path, branch: str = "master") -> int:
    return int(git("--git-dir", str(bare), "rev-list", "--count", branch))


def reject_pushes(bare: Path) -> None:
    hook = bare / "hooks" / "pre-receive"
    hook.write_text("#!/bin/sh\necho 'pushes are disabled' >&2\nexit 1\n")
    hook.chmod(0o755)


def downstream_for(remotes: dict[str, Path]) -> list[DownstreamConfig]:
    """Repository configs from the shipped YAML, pointed at local remotes."""
    repos = []
    for config in ConfigManager(str(REPO_CONFIG_DIR)).load_downstream():
        config.remote = str(remotes[config.name])
        repos.append(config)
    return repos
