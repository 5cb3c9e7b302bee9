"""Alpine .apk packaging with abuild."""

from pathlib import Path

from pkgrelay.build_environment import ContainerEnvironment, StagingArea
from pkgrelay.models import Version
from pkgrelay.package_handlers.base import PackageHandler


class AlpineHandler(PackageHandler):
    """Builds an apk with abuild under the unprivileged builder identity.

    abuild signs every package. A pre-provisioned private key is used when
    one is configured, otherwise a throwaway key is generated in the
    container.
    """

    format = "apk"
    extension = "apk"
    required_tools = ("abuild", "abuild-keygen")

    def __init__(self, *args, signing_key: Path | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.signing_key = signing_key

    def package_version(self, version: Version) -> str:
        return version.apk()

    def generate_metadata(self, version: Version, staging: StagingArea) -> dict[str, str]:
        project = self.project
        binary = project.binary_name
        pkgver = self.package_version(version)
        apkbuild = f"""# Maintainer: {project.maintainer}
pkgname={project.package_name}
pkgver={pkgver}
pkgrel={self.config.release}
pkgdesc="{project.description}"
url="{project.homepage}"
arch="{self.config.architecture}"
license="{project.license}"
depends="{' '.join(self.config.depends)}"
makedepends=""
options="!check"
source=""
builddir="$startdir"

package() {{
\tinstall -Dm755 "$startdir"/target/release/{binary} -t "$pkgdir"/usr/bin/
\tinstall -Dm644 "$startdir"/target/man/{binary}.1 "$pkgdir"/usr/share/man/man1/{binary}.1
\tgzip -9n "$pkgdir"/usr/share/man/man1/{binary}.1
\tinstall -Dm644 "$startdir"/LICENSE -t "$pkgdir"/usr/share/licenses/$pkgname/
}}
"""
        files = {"APKBUILD": apkbuild}
        if self.signing_key:
            files[f"keys/{self.signing_key.name}"] = self.signing_key.read_text()
        return files

    def package_commands(self, version: Version, staging: StagingArea) -> list[str]:
        if self.signing_key:
            key = self.signing_key.name
            keys = [
                "mkdir -p ~/.abuild",
                f"install -m600 keys/{key} ~/.abuild/{key}",
                f"openssl rsa -in ~/.abuild/{key} -pubout -out ~/.abuild/{key}.pub",
                f'echo "PACKAGER_PRIVKEY=$HOME/.abuild/{key}" > ~/.abuild/abuild.conf',
                f"sudo cp ~/.abuild/{key}.pub /etc/apk/keys/",
                "rm -rf keys",
            ]
        else:
            keys = ["abuild-keygen -ain"]
        return keys + ["abuild -r"]

    def locate_artifact(
        self, env: ContainerEnvironment, version: Version, staging: StagingArea
    ) -> str:
        pkgver = self.package_version(version)
        return self.find_one(
            env,
            f"{self.identity.home}/packages",
            f"{self.project.package_name}-{pkgver}-r{self.config.release}.apk",
        )
