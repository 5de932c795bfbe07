"""Extract compressed archives into their working directory."""

import zipfile
import zlib
from pathlib import Path

from loguru import logger

from heptabase_archive.errors import ExtractionError


def ensure_unpacked(archive_path: Path, target_dir: Path) -> bool:
    """Make sure ``archive_path`` has been extracted into ``target_dir``.

    An existing target directory is trusted as-is, even if the archive has
    changed since it was extracted. Extraction is not atomic: a failure can
    leave a partially populated target behind.

    Returns:
        True if the archive was extracted by this call, False if the target
        already existed.
    """
    if target_dir.exists():
        logger.debug("Already unpacked: {}", target_dir)
        return False

    target_dir.parent.mkdir(parents=True, exist_ok=True)
    target_dir.mkdir(parents=True, exist_ok=True)

    logger.info("Unpacking {} into {}", archive_path.name, target_dir)
    try:
        with zipfile.ZipFile(archive_path) as zf:
            for member in zf.infolist():
                zf.extract(member, target_dir)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, zlib.error) as e:
        msg = f"Failed to extract {archive_path}: {e}"
        raise ExtractionError(msg) from e
    return True
