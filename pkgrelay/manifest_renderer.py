"""Renders downstream package manifests from templates.

Templates use ``{{ name }}`` placeholders and no other syntax. Rendering is
plain substitution, so identical inputs always give identical bytes.

For AUR packages the .SRCINFO file is derived from the rendered PKGBUILD
rather than from a template of its own, so the two can never disagree.
"""

import logging
import re
import shlex
from dataclasses import dataclass
from pathlib import Path

from pkgrelay.config_manager import DOWNSTREAM_AUR, DownstreamConfig, ProjectConfig
from pkgrelay.errors import RenderError
from pkgrelay.models import ReleaseArtifacts
from pkgrelay.release_host import ReleaseHost

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

# Hex digest lengths of the checksums that end up in manifests
CHECKSUM_LENGTHS = {"sha256": 64, "b2": 128}
_HEX = re.compile(r"^[0-9a-f]+$")

# makepkg --printsrcinfo field order for pkgbase
SRCINFO_FIELDS = (
    "pkgdesc", "pkgver", "pkgrel", "epoch", "url", "install", "changelog",
    "arch", "groups", "license", "checkdepends", "makedepends", "depends",
    "optdepends", "provides", "conflicts", "replaces", "noextract", "options",
    "backup", "source", "validpgpkeys", "md5sums", "sha1sums", "sha224sums",
    "sha256sums", "sha384sums", "sha512sums", "b2sums",
)
SRCINFO_ARCH_FIELDS = (
    "source", "md5sums", "sha1sums", "sha224sums", "sha256sums", "sha384sums",
    "sha512sums", "b2sums", "checkdepends", "makedepends", "depends",
    "optdepends", "provides", "conflicts", "replaces",
)

_ASSIGNMENT = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)=(.*)$")
_FUNCTION_START = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*\s*\(\)\s*\{?\s*$")
_VARIABLE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


@dataclass(frozen=True)
class RenderedManifest:
    """Files rendered for one downstream repository."""

    repo: str
    staging_dir: Path
    files: dict[str, Path]


def render_template(text: str, context: dict[str, str], name: str = "<template>") -> str:
    """Substitute every placeholder in a template.

    Raises:
        RenderError: If a placeholder has no value in the context
    """
    missing = sorted({m.group(1) for m in PLACEHOLDER.finditer(text)} - context.keys())
    if missing:
        raise RenderError(name, f"missing values for placeholders: {', '.join(missing)}")
    return PLACEHOLDER.sub(lambda m: str(context[m.group(1)]), text)


def validate_checksum(algorithm: str, digest: str) -> str:
    """Check that a digest is lowercase hex of the algorithm's length.

    Raises:
        RenderError: If the digest is malformed
    """
    expected = CHECKSUM_LENGTHS.get(algorithm)
    if expected is None or len(digest) != expected or not _HEX.match(digest):
        raise RenderError(algorithm, f"malformed checksum {digest!r}")
    return digest


def parse_pkgbuild(text: str) -> dict[str, list[str]]:
    """Read the top-level variable assignments of a PKGBUILD.

    Scalars become one-element lists. Function bodies and comments are
    skipped; $var and ${var} references to earlier assignments are expanded.

    Raises:
        RenderError: If an assignment cannot be tokenized
    """
    values: dict[str, list[str]] = {}
    lines = iter(text.splitlines())
    depth = 0

    for line in lines:
        stripped = line.strip()
        if depth:
            depth += stripped.count("{") - stripped.count("}")
            continue
        if not stripped or stripped.startswith("#"):
            continue
        if _FUNCTION_START.match(stripped):
            depth = 1 if stripped.endswith("{") else 0
            if not depth:
                # Opening brace on the next line
                next(lines, None)
                depth = 1
            continue

        match = _ASSIGNMENT.match(stripped)
        if not match:
            continue
        key, raw = match.groups()

        if raw.startswith("("):
            # Arrays may span several lines
            while not raw.rstrip().endswith(")"):
                continuation = next(lines, None)
                if continuation is None:
                    raise RenderError("PKGBUILD", f"unterminated array {key}")
                raw += " " + continuation.strip()
            raw = raw.strip()[1:-1]

        try:
            words = shlex.split(raw, comments=True)
        except ValueError as e:
            raise RenderError("PKGBUILD", f"cannot parse {key}: {e}") from e

        values[key] = [_expand(word, values) for word in words]

    return values


def _expand(word: str, values: dict[str, list[str]]) -> str:
    def lookup(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        found = values.get(name)
        return found[0] if found else ""

    return _VARIABLE.sub(lookup, word)


def derive_srcinfo(pkgbuild: str) -> str:
    """Generate .SRCINFO content from a rendered PKGBUILD.

    Raises:
        RenderError: If pkgname or pkgver are missing
    """
    values = parse_pkgbuild(pkgbuild)
    for required in ("pkgname", "pkgver", "pkgrel"):
        if not values.get(required):
            raise RenderError("PKGBUILD", f"{required} is not set")

    pkgname = values["pkgname"][0]
    lines = [f"pkgbase = {values.get('pkgbase', [pkgname])[0]}"]
    for field in SRCINFO_FIELDS:
        for value in values.get(field, []):
            lines.append(f"\t{field} = {value}")
    for arch in values.get("arch", []):
        for field in SRCINFO_ARCH_FIELDS:
            for value in values.get(f"{field}_{arch}", []):
                lines.append(f"\t{field}_{arch} = {value}")
    lines.append("")
    lines.append(f"pkgname = {pkgname}")
    return "\n".join(lines) + "\n"


class ManifestRenderer:
    """Renders manifests for every downstream repository into a staging area."""

    def __init__(self, project: ProjectConfig, host: ReleaseHost, template_root: Path, staging_dir: Path):
        """Initialize the renderer.

        Args:
            project: Metadata about the packaged application
            host: Release host used to build asset URLs
            template_root: Directory template paths are relative to
            staging_dir: Directory receiving one subdirectory per repository
        """
        self.project = project
        self.host = host
        self.template_root = Path(template_root)
        self.staging_dir = Path(staging_dir)

    def context(self, artifacts: ReleaseArtifacts, repo: DownstreamConfig) -> dict[str, str]:
        """Values available to templates for one repository.

        Raises:
            RenderError: If a checksum is malformed
        """
        version = artifacts.version
        source = artifacts.source
        context = {
            "package": self.project.package_name,
            "version": str(version),
            "tag": version.tag,
            "pkgrel": str(repo.pkgrel),
            "description": self.project.description,
            "maintainer": self.project.maintainer,
            "license": self.project.license,
            "homepage": self.project.homepage,
            "repository": self.project.repository,
            "source_url": self.host.source_url(version),
            "source_tag_url": self.host.source_tag_url(version),
            "source_sha256": validate_checksum("sha256", source.checksum("sha256")),
            "source_b2": validate_checksum("b2", source.checksum("b2")),
            "arch_list": " ".join(f"'{arch}'" for arch in artifacts.binaries),
        }
        for arch, binary in artifacts.binaries.items():
            context[f"bin_{arch}_url"] = binary.url
            context[f"bin_{arch}_sha256"] = validate_checksum("sha256", binary.checksum("sha256"))
            context[f"bin_{arch}_b2"] = validate_checksum("b2", binary.checksum("b2"))
        return context

    def render(self, artifacts: ReleaseArtifacts, repo: DownstreamConfig) -> RenderedManifest:
        """Render the manifest files owned by one repository.

        Returns:
            RenderedManifest mapping repository paths to staged files

        Raises:
            RenderError: If the template is missing or cannot be rendered
        """
        template_path = self.template_root / repo.template
        try:
            template = template_path.read_text()
        except OSError as e:
            raise RenderError(repo.template, f"cannot read template: {e}") from e

        manifest = render_template(template, self.context(artifacts, repo), repo.template)
        rendered = {repo.destination: manifest}
        if repo.kind == DOWNSTREAM_AUR:
            rendered[".SRCINFO"] = derive_srcinfo(manifest)

        repo_dir = self.staging_dir / repo.name
        files = {}
        for relative, content in rendered.items():
            path = repo_dir / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
            files[relative] = path

        logger.info(f"Rendered {', '.join(sorted(files))} for {repo.name}")
        return RenderedManifest(repo=repo.name, staging_dir=repo_dir, files=files)
