"""Configuration management for packaging targets and downstream repositories."""

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from pkgrelay.errors import ConfigError

TOOLCHAIN_RUSTUP = "rustup"
TOOLCHAIN_DISTRO = "distro"

DOWNSTREAM_AUR = "aur"
DOWNSTREAM_HOMEBREW = "homebrew"


@dataclass
class ProjectConfig:
    """Metadata about the application being packaged.

    Attributes:
        package_name: Package name used by every target (e.g., "batdoc")
        binary_name: Name of the compiled executable under target/release
        description: One-line package summary
        long_description: Multi-line description for formats that support it
        maintainer: Maintainer in "Name <email>" format
        homepage: Project homepage URL
        license: SPDX license identifier
        repository: GitHub repository in "owner/name" form
        binary_architectures: Architectures with pre-compiled release tarballs
    """

    package_name: str
    binary_name: str
    description: str
    long_description: str
    maintainer: str
    homepage: str
    license: str
    repository: str
    binary_architectures: list[str]

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "ProjectConfig":
        """Load project configuration from a YAML file.

        Raises:
            FileNotFoundError: If the YAML file does not exist
            KeyError: If required fields are missing from the YAML file
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f)

        return cls(
            package_name=data["package_name"],
            binary_name=data.get("binary_name", data["package_name"]),
            description=data["description"],
            long_description=data.get("long_description", "").strip(),
            maintainer=data["maintainer"],
            homepage=data["homepage"],
            license=data["license"],
            repository=data["repository"],
            binary_architectures=list(data["binary_architectures"]),
        )


@dataclass
class TargetConfig:
    """Configuration for one packaging format.

    Attributes:
        format: Handler key ("deb", "rpm", "apk" or "arch")
        image: Container image providing the distribution baseline
        architecture: Architecture string in the format's own convention
        release: Package release number
        toolchain: "rustup" when the distro compiler is too old, else "distro"
        build_user: Identity that compiles and packages ("root" or a user name)
        provision: Privileged shell commands run before anything else
        depends: Runtime dependencies in the format's own syntax
        section: Archive section, for formats that have one
    """

    format: str
    image: str
    architecture: str
    release: int
    toolchain: str
    build_user: str
    provision: list[str]
    depends: list[str] = field(default_factory=list)
    section: str | None = None

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "TargetConfig":
        """Load a target configuration from a YAML file.

        Raises:
            FileNotFoundError: If the YAML file does not exist
            KeyError: If required fields are missing from the YAML file
            ConfigError: If the toolchain policy is unknown or a provision
                step is not a plain string
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f)

        toolchain = data.get("toolchain", TOOLCHAIN_DISTRO)
        if toolchain not in (TOOLCHAIN_RUSTUP, TOOLCHAIN_DISTRO):
            raise ConfigError(f"{yaml_path}: unknown toolchain {toolchain!r}")

        provision = list(data["provision"])
        for index, step in enumerate(provision):
            if not isinstance(step, str):
                raise ConfigError(
                    f"{yaml_path}: provision step {index} must be a string, got {type(step).__name__}"
                    ' (quote entries that contain ": ")'
                )

        return cls(
            format=data["format"],
            image=data["image"],
            architecture=data["architecture"],
            release=int(data["release"]),
            toolchain=toolchain,
            build_user=data.get("build_user", "root"),
            provision=provision,
            depends=list(data.get("depends") or []),
            section=data.get("section"),
        )


@dataclass
class DownstreamConfig:
    """Configuration for one downstream package repository.

    Attributes:
        name: Repository identifier used in reports (e.g., "batdoc-bin")
        kind: "aur" or "homebrew"
        remote: Clone URL
        branch: Default branch to push to
        template: Manifest template path, relative to the config directory
        destination: Path of the rendered manifest inside the repository
        commit_message: Format string with {package}, {version}, {pkgrel}, {tag}
        pkgrel: Package release number written into the manifest
    """

    name: str
    kind: str
    remote: str
    branch: str
    template: str
    destination: str
    commit_message: str
    pkgrel: int = 1

    @property
    def owned_files(self) -> list[str]:
        """Repository paths this tool overwrites on every publish."""
        if self.kind == DOWNSTREAM_AUR:
            return [self.destination, ".SRCINFO"]
        return [self.destination]

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "DownstreamConfig":
        """Load a downstream repository configuration from a YAML file.

        Raises:
            FileNotFoundError: If the YAML file does not exist
            KeyError: If required fields are missing from the YAML file
            ConfigError: If the repository kind is unknown
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f)

        kind = data["kind"]
        if kind not in (DOWNSTREAM_AUR, DOWNSTREAM_HOMEBREW):
            raise ConfigError(f"{yaml_path}: unknown downstream kind {kind!r}")

        return cls(
            name=data["name"],
            kind=kind,
            remote=data["remote"],
            branch=data.get("branch", "master"),
            template=data["template"],
            destination=data["destination"],
            commit_message=data["commit_message"],
            pkgrel=int(data.get("pkgrel", 1)),
        )


class ConfigManager:
    """Loads project, target and downstream configuration files.

    Layout of the configuration directory::

        project.yaml
        targets/<format>.yaml
        downstream/<name>.yaml
        templates/...

    Attributes:
        config_dir: Path to the configuration directory
    """

    def __init__(self, config_dir: str = "config") -> None:
        self.config_dir = Path(config_dir)

    def load_project(self) -> ProjectConfig:
        return ProjectConfig.from_yaml(self.config_dir / "project.yaml")

    def load_targets(self) -> list[TargetConfig]:
        """Load every packaging target, sorted by file name."""
        return [
            TargetConfig.from_yaml(path)
            for path in sorted((self.config_dir / "targets").glob("*.yaml"))
        ]

    def load_downstream(self) -> list[DownstreamConfig]:
        """Load every downstream repository, sorted by file name."""
        return [
            DownstreamConfig.from_yaml(path)
            for path in sorted((self.config_dir / "downstream").glob("*.yaml"))
        ]

    def get_downstream(self, name: str) -> DownstreamConfig:
        """Get configuration for a specific downstream repository.

        Raises:
            FileNotFoundError: If no config file exists for the repository
        """
        return DownstreamConfig.from_yaml(self.config_dir / "downstream" / f"{name}.yaml")

    def template_path(self, relative: str) -> Path:
        return self.config_dir / relative
