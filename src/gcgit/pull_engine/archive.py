"""Bounded extraction of the YAML payload carried inside a ZIP artifact.

Every limit is enforced against the central directory before a single
entry is decompressed, and again while the chosen entry is read:

- compressed input at most 10 MiB
- at most 10 entries
- cumulative declared uncompressed size at most 50 MiB
- per-entry compression ratio at most 50:1
- no entry name containing ``..`` or starting with a path separator

Entries are examined in central-directory order and the first one whose
name ends in an accepted suffix is the payload. Later entries must still
pass the header checks but are never decompressed.
"""
import io
import logging
import zipfile
import zlib
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

MiB = 1024 * 1024

TEXT_SUFFIXES = (".yaml", ".yml")

_READ_CHUNK = 64 * 1024


@dataclass(frozen=True)
class ArchiveLimits:
    """Safety limits for one archive."""
    max_archive_size: int = 10 * MiB
    max_total_uncompressed: int = 50 * MiB
    max_compression_ratio: float = 50.0
    max_entries: int = 10


DEFAULT_LIMITS = ArchiveLimits()


class ArchiveError(Exception):
    """Base class for archive extraction failures."""
    pass


class ArchiveSafetyError(ArchiveError):
    """Raised when an archive breaches a safety limit.

    Attributes:
        limit: Name of the breached rule (compressed_size, entry_count,
            total_size, compression_ratio, path_traversal)
        entry: Offending entry name, when the rule is per entry
    """

    def __init__(self, limit: str, message: str, entry: Optional[str] = None):
        self.limit = limit
        self.entry = entry
        super().__init__(message)


class ArchiveFormatError(ArchiveError):
    """Raised when the archive is unreadable or carries no usable payload."""
    pass


def is_unsafe_name(name: str) -> bool:
    return ".." in name or name.startswith(("/", "\\"))


def check_entry(info: zipfile.ZipInfo, running_total: int, limits: ArchiveLimits = DEFAULT_LIMITS) -> int:
    """Validate one central-directory entry without reading its data.

    Args:
        info: Entry header
        running_total: Declared uncompressed bytes of the entries before it
        limits: Limits to enforce

    Returns:
        The running total including this entry

    Raises:
        ArchiveSafetyError: On path traversal, ratio or cumulative size breach
    """
    name = info.filename
    if is_unsafe_name(name):
        raise ArchiveSafetyError("path_traversal", f"Unsafe path in ZIP entry: {name}", entry=name)

    if info.file_size > 0:
        if info.compress_size <= 0:
            raise ArchiveSafetyError(
                "compression_ratio",
                f"ZIP entry '{name}' declares {info.file_size} bytes from an empty stream",
                entry=name,
            )
        ratio = info.file_size / info.compress_size
        if ratio > limits.max_compression_ratio:
            raise ArchiveSafetyError(
                "compression_ratio",
                f"Suspicious compression ratio {ratio:.0f}:1 for '{name}' "
                f"(max {limits.max_compression_ratio:.0f}:1)",
                entry=name,
            )

    total = running_total + info.file_size
    if total > limits.max_total_uncompressed:
        raise ArchiveSafetyError(
            "total_size",
            f"Total uncompressed size exceeds {limits.max_total_uncompressed} bytes at '{name}'",
            entry=name,
        )
    return total


def _read_bounded(archive: zipfile.ZipFile, info: zipfile.ZipInfo, budget: int) -> bytes:
    """Read one entry, refusing to inflate past its declared size or the budget."""
    ceiling = min(info.file_size, budget)
    buffer = bytearray()
    with archive.open(info) as stream:
        while True:
            chunk = stream.read(_READ_CHUNK)
            if not chunk:
                break
            buffer.extend(chunk)
            if len(buffer) > ceiling:
                raise ArchiveSafetyError(
                    "total_size",
                    f"ZIP entry '{info.filename}' inflates past its declared size",
                    entry=info.filename,
                )
    return bytes(buffer)


def extract_text_payload(
    data: bytes,
    suffixes: tuple[str, ...] = TEXT_SUFFIXES,
    limits: ArchiveLimits = DEFAULT_LIMITS,
) -> str:
    """Return the text of the first entry with an accepted suffix.

    Args:
        data: Raw archive bytes as downloaded
        suffixes: Accepted entry name suffixes (case-insensitive)
        limits: Safety limits

    Returns:
        The decoded UTF-8 payload

    Raises:
        ArchiveSafetyError: If any limit is breached
        ArchiveFormatError: If the archive is corrupt or holds no payload
    """
    if len(data) > limits.max_archive_size:
        raise ArchiveSafetyError(
            "compressed_size",
            f"ZIP file too large: {len(data)} bytes (max {limits.max_archive_size})",
        )

    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise ArchiveFormatError(f"Failed to open ZIP archive: {e}") from e

    with archive:
        entries = archive.infolist()
        if len(entries) > limits.max_entries:
            raise ArchiveSafetyError(
                "entry_count",
                f"Too many files in ZIP: {len(entries)} (max {limits.max_entries})",
            )

        running_total = 0
        payload_entry: Optional[zipfile.ZipInfo] = None
        for info in entries:
            running_total = check_entry(info, running_total, limits)
            if payload_entry is None and not info.is_dir() and info.filename.lower().endswith(suffixes):
                payload_entry = info

        if payload_entry is None:
            raise ArchiveFormatError("No YAML file found in ZIP archive")

        logger.debug(
            f"Extracting '{payload_entry.filename}' "
            f"({payload_entry.file_size} bytes) from archive of {len(entries)} entries"
        )
        try:
            raw = _read_bounded(archive, payload_entry, limits.max_total_uncompressed)
        except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as e:
            raise ArchiveFormatError(f"Failed to read '{payload_entry.filename}': {e}") from e

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ArchiveFormatError(f"'{payload_entry.filename}' is not valid UTF-8: {e}") from e
