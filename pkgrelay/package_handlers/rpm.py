"""Fedora .rpm packaging with rpmbuild."""

import os
from datetime import UTC, datetime

from pkgrelay.build_environment import ContainerEnvironment, StagingArea
from pkgrelay.models import Version
from pkgrelay.package_handlers.base import PackageHandler


class RpmHandler(PackageHandler):
    """Builds a binary RPM from the already compiled tree.

    The spec file has no %prep or %build: rpmbuild's source directory points
    at the staging area, so %install picks up the cargo output directly.
    """

    format = "rpm"
    extension = "rpm"
    required_tools = ("rpmbuild",)

    def changelog_date(self) -> str:
        # SOURCE_DATE_EPOCH keeps rebuilds of the same version byte-stable
        epoch = os.getenv("SOURCE_DATE_EPOCH")
        when = (
            datetime.fromtimestamp(int(epoch), UTC) if epoch else datetime.now(UTC)
        )
        return when.strftime("%a %b %d %Y")

    def generate_metadata(self, version: Version, staging: StagingArea) -> dict[str, str]:
        project = self.project
        binary = project.binary_name
        pkgver = self.package_version(version)
        spec = f"""Name:           {project.package_name}
Version:        {pkgver}
Release:        {self.config.release}
Summary:        {project.description}

License:        {project.license}
URL:            {project.homepage}

%global debug_package %{{nil}}

%description
{project.long_description}

%install
install -Dpm 0755 %{{_sourcedir}}/target/release/{binary} %{{buildroot}}%{{_bindir}}/{binary}
install -Dpm 0644 %{{_sourcedir}}/target/man/{binary}.1 %{{buildroot}}%{{_mandir}}/man1/{binary}.1
install -Dpm 0644 %{{_sourcedir}}/LICENSE %{{buildroot}}%{{_licensedir}}/%{{name}}/LICENSE
install -Dpm 0644 %{{_sourcedir}}/README.md %{{buildroot}}%{{_docdir}}/%{{name}}/README.md

%files
%{{_licensedir}}/%{{name}}/LICENSE
%{{_docdir}}/%{{name}}/README.md
%{{_bindir}}/{binary}
%{{_mandir}}/man1/{binary}.1*

%changelog
* {self.changelog_date()} {project.maintainer} - {pkgver}-{self.config.release}
- Update to {pkgver}
"""
        return {f"rpmbuild/SPECS/{project.package_name}.spec": spec}

    def package_commands(self, version: Version, staging: StagingArea) -> list[str]:
        build_dir = staging.container_path()
        return [
            "mkdir -p rpmbuild/BUILD rpmbuild/RPMS rpmbuild/SOURCES rpmbuild/SRPMS",
            f'rpmbuild --define "_topdir {build_dir}/rpmbuild"'
            f' --define "_sourcedir {build_dir}"'
            f" --nodeps -bb rpmbuild/SPECS/{self.project.package_name}.spec",
        ]

    def locate_artifact(
        self, env: ContainerEnvironment, version: Version, staging: StagingArea
    ) -> str:
        return self.find_one(
            env,
            staging.container_path("rpmbuild", "RPMS"),
            f"{self.project.package_name}-{self.package_version(version)}-*.rpm",
        )
