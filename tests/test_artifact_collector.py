"""Unit tests for artifact_collector module."""

import hashlib
import stat

from pkgrelay.artifact_collector import ArtifactCollector
from pkgrelay.models import BuildResult, FailureCategory


def built(tmp_path, target, name, content=b"package"):
    path = tmp_path / "work" / target / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return BuildResult(target=target, version="1.2.3", artifact_path=path)


def test_copies_successful_artifacts(tmp_path):
    results = [
        built(tmp_path, "deb", "batdoc_1.2.3-1_amd64.deb", b"deb"),
        built(tmp_path, "rpm", "batdoc_1.2.3-1_x86_64.rpm", b"rpm"),
    ]
    report = ArtifactCollector(tmp_path / "out").collect(results)

    assert report.produced == ["batdoc_1.2.3-1_amd64.deb", "batdoc_1.2.3-1_x86_64.rpm"]
    assert report.failed == {}
    assert (tmp_path / "out" / "batdoc_1.2.3-1_amd64.deb").read_bytes() == b"deb"


def test_failed_targets_are_reported_not_copied(tmp_path):
    results = [
        built(tmp_path, "deb", "batdoc_1.2.3-1_amd64.deb"),
        BuildResult(target="arch", version="1.2.3", error="makepkg failed", category=FailureCategory.PACKAGING),
    ]
    report = ArtifactCollector(tmp_path / "out").collect(results)

    assert report.produced == ["batdoc_1.2.3-1_amd64.deb"]
    assert report.failed == {"arch": "makepkg failed"}


def test_sha256sums_lists_collected_packages(tmp_path):
    results = [
        built(tmp_path, "rpm", "b.rpm", b"second"),
        built(tmp_path, "deb", "a.deb", b"first"),
    ]
    ArtifactCollector(tmp_path / "out").collect(results)

    lines = (tmp_path / "out" / "SHA256SUMS").read_text().splitlines()
    assert lines == [
        f"{hashlib.sha256(b'first').hexdigest()}  a.deb",
        f"{hashlib.sha256(b'second').hexdigest()}  b.rpm",
    ]


def test_checksums_can_be_disabled(tmp_path):
    ArtifactCollector(tmp_path / "out", write_checksums=False).collect(
        [built(tmp_path, "deb", "a.deb")]
    )
    assert not (tmp_path / "out" / "SHA256SUMS").exists()


def test_missing_artifact_becomes_a_failure(tmp_path):
    result = built(tmp_path, "deb", "a.deb")
    result.artifact_path.unlink()

    report = ArtifactCollector(tmp_path / "out").collect([result])

    assert report.produced == []
    assert report.failed["deb"].startswith("collect failed")
    # No temporary files are left behind
    assert list((tmp_path / "out").iterdir()) == []


def test_overwrites_previous_output(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    (out / "a.deb").write_bytes(b"stale")

    ArtifactCollector(out).collect([built(tmp_path, "deb", "a.deb", b"fresh")])

    assert (out / "a.deb").read_bytes() == b"fresh"


def test_collected_packages_are_world_readable(tmp_path):
    source = built(tmp_path, "apk", "batdoc_1.2.3-0_x86_64.apk")
    source.artifact_path.chmod(0o600)

    ArtifactCollector(tmp_path / "out").collect([source])

    mode = (tmp_path / "out" / "batdoc_1.2.3-0_x86_64.apk").stat().st_mode
    assert stat.S_IMODE(mode) == 0o644
