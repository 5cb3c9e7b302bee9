"""Collects built packages into a single output directory."""

import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path

from pkgrelay.models import BuildResult, CollectionReport

logger = logging.getLogger(__name__)


class ArtifactCollector:
    """Copies successful build artifacts into one output directory."""

    def __init__(self, output_dir: Path, write_checksums: bool = True):
        """Initialize the collector.

        Args:
            output_dir: Directory receiving the packages; created if absent
            write_checksums: Also write a SHA256SUMS file for the collected packages
        """
        self.output_dir = Path(output_dir)
        self.write_checksums = write_checksums

    def collect(self, results: list[BuildResult]) -> CollectionReport:
        """Copy every successful artifact and report failures.

        Args:
            results: Terminal results of every build target

        Returns:
            CollectionReport listing produced file names and failed targets
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        report = CollectionReport(output_dir=self.output_dir)

        for result in results:
            if not result.succeeded:
                report.failed[result.target] = result.error or "unknown error"
                continue

            try:
                destination = self._atomic_copy(result.artifact_path)
            except OSError as e:
                logger.error(f"Failed to collect {result.artifact_path}: {e}")
                report.failed[result.target] = f"collect failed: {e}"
                continue

            report.produced.append(destination.name)
            logger.info(f"Collected {destination.name}")

        if self.write_checksums and report.produced:
            self._write_sha256sums(report.produced)

        logger.info(
            f"Collected {len(report.produced)} package(s) into {self.output_dir}, "
            f"{len(report.failed)} target(s) failed"
        )
        return report

    def _atomic_copy(self, source: Path) -> Path:
        """Copy a file so the destination never holds partial content."""
        destination = self.output_dir / source.name
        fd, tmp_name = tempfile.mkstemp(dir=self.output_dir, prefix=f".{source.name}.")
        os.close(fd)
        try:
            shutil.copyfile(source, tmp_name)
            # mkstemp creates 0600; published packages are world-readable
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, destination)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return destination

    def _write_sha256sums(self, names: list[str]) -> None:
        lines = []
        for name in sorted(names):
            digest = hashlib.sha256()
            with open(self.output_dir / name, "rb") as f:
                for chunk in iter(lambda: f.read(65536), b""):
                    digest.update(chunk)
            lines.append(f"{digest.hexdigest()}  {name}")
        (self.output_dir / "SHA256SUMS").write_text("\n".join(lines) + "\n")
