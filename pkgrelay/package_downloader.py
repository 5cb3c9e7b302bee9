"""Release asset downloader with checksum computation and retry logic."""

import hashlib
import logging
import shutil
import time
from pathlib import Path

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from pkgrelay.errors import ChecksumError, DownloadError, IncompleteDownloadError
from pkgrelay.models import Artifact, ArtifactKind, ReleaseArtifacts, Version
from pkgrelay.release_host import ReleaseHost

logger = logging.getLogger(__name__)

# Every algorithm some downstream manifest asks for: AUR source packages use
# b2sums, AUR binary packages and Homebrew use sha256.
REQUIRED_ALGORITHMS = ("sha256", "b2")

_HASHERS = {
    "sha256": hashlib.sha256,
    "b2": hashlib.blake2b,
}

# Errors worth another attempt: the connection dropped or the body was cut short
_TRANSIENT_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
    IncompleteDownloadError,
)


def compute_checksums(path: Path, algorithms: tuple[str, ...] = REQUIRED_ALGORITHMS) -> dict[str, str]:
    """Compute hex digests of a file.

    Args:
        path: File to hash
        algorithms: Algorithm keys ("sha256", "b2")

    Returns:
        Mapping of algorithm to hex digest

    Raises:
        ChecksumError: If an algorithm is unknown or the file cannot be read
    """
    try:
        hashers = {name: _HASHERS[name]() for name in algorithms}
    except KeyError as e:
        raise ChecksumError(f"Unsupported checksum algorithm: {e.args[0]}") from None

    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                for hasher in hashers.values():
                    hasher.update(chunk)
    except OSError as e:
        raise ChecksumError(f"Cannot read {path} for checksumming: {e}") from e

    return {name: hasher.hexdigest() for name, hasher in hashers.items()}


class PackageDownloader:
    """Downloads release tarballs with retry logic and checksums them."""

    def __init__(
        self,
        download_dir: Path,
        timeout: int = 120,
        max_attempts: int = 3,
        backoff: float = 1.0,
    ):
        """Initialize the package downloader.

        Args:
            download_dir: Directory to store downloaded files
            timeout: Request timeout in seconds
            max_attempts: Attempts per file for transient failures
            backoff: Base delay in seconds between attempts, doubled each time
        """
        self.download_dir = Path(download_dir)
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.session = self._create_session()

        # Ensure download directory exists
        self.download_dir.mkdir(parents=True, exist_ok=True)

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry configuration.

        Returns:
            Configured requests session with exponential backoff retry
        """
        session = requests.Session()

        # Retry transient HTTP statuses before the body is read
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,  # Exponential backoff: 1, 2, 4 seconds
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def fetch_release(
        self, version: Version, host: ReleaseHost, package: str, architectures: list[str]
    ) -> ReleaseArtifacts:
        """Download the source tarball and one binary tarball per architecture.

        Args:
            version: Release version
            host: Release host that resolves asset URLs
            package: Package name used in binary asset names
            architectures: Fixed set of binary architectures

        Returns:
            ReleaseArtifacts with checksums for every file

        Raises:
            DownloadError: If any file cannot be downloaded
            ChecksumError: If a checksum cannot be computed
        """
        logger.info(f"Starting download for version {version}")

        version_dir = self.download_dir / f"{package}-{version}"
        version_dir.mkdir(parents=True, exist_ok=True)

        try:
            source = self.fetch_artifact(
                host.source_url(version), version_dir / "source.tar.gz", ArtifactKind.SOURCE
            )
            binaries = {}
            for arch in architectures:
                name = host.binary_asset_name(package, version, arch)
                binaries[arch] = self.fetch_artifact(
                    host.binary_url(package, version, arch),
                    version_dir / name,
                    ArtifactKind.BINARY,
                    arch=arch,
                )
        except (DownloadError, ChecksumError) as e:
            logger.error(f"Failed to download files for version {version}: {e}")
            self._cleanup_directory(version_dir)
            raise

        logger.info(f"Successfully downloaded all files for version {version}")
        return ReleaseArtifacts(version=version, source=source, binaries=binaries)

    def fetch_artifact(
        self, url: str, target_path: Path, kind: ArtifactKind, arch: str | None = None
    ) -> Artifact:
        """Download one file and compute its checksums."""
        self._download_with_retries(url, target_path)
        checksums = compute_checksums(target_path)
        for algorithm, digest in checksums.items():
            logger.info(f"  {target_path.name} {algorithm}: {digest}")
        return Artifact(
            name=target_path.name,
            path=target_path,
            kind=kind,
            url=url,
            size=target_path.stat().st_size,
            checksums=checksums,
            arch=arch,
        )

    def _download_with_retries(self, url: str, target_path: Path) -> Path:
        """Download a file, retrying transient failures a bounded number of times.

        Raises:
            IncompleteDownloadError: If the last attempt ended short
            DownloadError: If the download failed permanently or retries ran out
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._download_file(url, target_path)
            except IncompleteDownloadError:
                if attempt == self.max_attempts:
                    raise
                logger.warning(f"Incomplete download of {url} (attempt {attempt})")
            except _TRANSIENT_ERRORS as e:
                if attempt == self.max_attempts:
                    raise DownloadError(url, f"gave up after {attempt} attempts: {e}") from e
                logger.warning(f"Transient error downloading {url} (attempt {attempt}): {e}")
            except requests.RequestException as e:
                raise DownloadError(url, str(e)) from e

            time.sleep(self.backoff * 2 ** (attempt - 1))

        raise DownloadError(url, "no download attempts were made")

    def _download_file(self, url: str, target_path: Path) -> Path:
        """Download a single file, verifying its length.

        Returns:
            Path to the downloaded file

        Raises:
            requests.RequestException: If the request fails
            IncompleteDownloadError: If fewer bytes arrived than announced
        """
        logger.info(f"Downloading {target_path.name} from {url}")
        partial = target_path.with_name(target_path.name + ".part")

        try:
            response = self.session.get(url, timeout=self.timeout, stream=True)
            response.raise_for_status()

            # Write file in chunks to handle large files efficiently
            received = 0
            with open(partial, "wb") as f:
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:  # Filter out keep-alive chunks
                        f.write(chunk)
                        received += len(chunk)

            announced = response.headers.get("Content-Length")
            expected = int(announced) if announced and announced.isdigit() else None
            if received == 0 or (expected is not None and received != expected):
                raise IncompleteDownloadError(url, expected, received)

            partial.replace(target_path)
            logger.info(f"Successfully downloaded {target_path.name} ({received} bytes)")
            return target_path

        except (requests.RequestException, IncompleteDownloadError) as e:
            logger.error(f"Failed to download {target_path.name} from {url}: {e}")
            # Clean up partial file
            partial.unlink(missing_ok=True)
            raise

    def _cleanup_directory(self, directory: Path) -> None:
        """Remove a download directory and its contents."""
        try:
            shutil.rmtree(directory)
            logger.info(f"Cleaned up directory: {directory}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to clean up directory {directory}: {e}")
