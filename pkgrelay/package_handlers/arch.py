"""Arch Linux .pkg.tar.zst packaging with makepkg."""

from pkgrelay.build_environment import ContainerEnvironment, StagingArea
from pkgrelay.models import Version
from pkgrelay.package_handlers.base import PackageHandler


class ArchHandler(PackageHandler):
    """Builds an Arch package with makepkg, which refuses to run as root."""

    format = "arch"
    extension = "pkg.tar.zst"
    required_tools = ("makepkg",)

    def generate_metadata(self, version: Version, staging: StagingArea) -> dict[str, str]:
        project = self.project
        binary = project.binary_name
        pkgver = self.package_version(version)
        depends = " ".join(f"'{dep}'" for dep in self.config.depends)
        pkgbuild = f"""# Maintainer: {project.maintainer}
pkgname={project.package_name}
pkgver={pkgver}
pkgrel={self.config.release}
pkgdesc="{project.description}"
arch=('{self.config.architecture}')
url="{project.homepage}"
license=('{project.license}')
depends=({depends})
options=('!debug')

package() {{
\tinstall -Dm755 "$startdir/target/release/{binary}" "$pkgdir/usr/bin/{binary}"
\tinstall -Dm644 "$startdir/target/man/{binary}.1" "$pkgdir/usr/share/man/man1/{binary}.1"
\tinstall -Dm644 "$startdir/LICENSE" "$pkgdir/usr/share/licenses/$pkgname/LICENSE"
}}
"""
        return {"PKGBUILD": pkgbuild}

    def package_commands(self, version: Version, staging: StagingArea) -> list[str]:
        return ["makepkg --force --noconfirm"]

    def locate_artifact(
        self, env: ContainerEnvironment, version: Version, staging: StagingArea
    ) -> str:
        pkgver = self.package_version(version)
        return self.find_one(
            env,
            staging.container_path(),
            f"{self.project.package_name}-{pkgver}-{self.config.release}-*.pkg.tar.zst",
        )
