"""Debian .deb packaging with dpkg-deb."""

from pkgrelay.build_environment import ContainerEnvironment, StagingArea
from pkgrelay.models import Version
from pkgrelay.package_handlers.base import PackageHandler


class DebianHandler(PackageHandler):
    """Assembles a binary package tree by hand and builds it with dpkg-deb."""

    format = "deb"
    extension = "deb"
    required_tools = ("dpkg-deb", "gzip")

    def generate_metadata(self, version: Version, staging: StagingArea) -> dict[str, str]:
        project = self.project
        lines = [
            f"Package: {project.package_name}",
            f"Version: {self.package_version(version)}-{self.config.release}",
            f"Section: {self.config.section or 'misc'}",
            "Priority: optional",
            f"Architecture: {self.config.architecture}",
            f"Maintainer: {project.maintainer}",
        ]
        if self.config.depends:
            lines.append(f"Depends: {', '.join(self.config.depends)}")
        lines.append(f"Homepage: {project.homepage}")
        lines.append(f"Description: {project.description}")
        # Extended description lines are indented by one space
        for line in project.long_description.splitlines():
            lines.append(f" {line}" if line.strip() else " .")
        return {"dpkg/DEBIAN/control": "\n".join(lines) + "\n"}

    def package_commands(self, version: Version, staging: StagingArea) -> list[str]:
        name = self.project.package_name
        binary = self.project.binary_name
        return [
            f"mkdir -p dpkg/usr/bin dpkg/usr/share/doc/{name} dpkg/usr/share/man/man1 out",
            f"install -m755 target/release/{binary} dpkg/usr/bin/{binary}",
            f"install -m644 target/man/{binary}.1 dpkg/usr/share/man/man1/{binary}.1",
            f"gzip -9n dpkg/usr/share/man/man1/{binary}.1",
            f"install -m644 README.md dpkg/usr/share/doc/{name}/README",
            f"install -m644 LICENSE dpkg/usr/share/doc/{name}/copyright",
            f"dpkg-deb --root-owner-group --build dpkg out/{self.artifact_name(version)}",
        ]

    def locate_artifact(
        self, env: ContainerEnvironment, version: Version, staging: StagingArea
    ) -> str:
        return staging.container_path("out", self.artifact_name(version))
