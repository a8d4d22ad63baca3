"""Artifact writer -- mirror the workspace into the output dir and zip it.

All functions here are blocking; the pipeline runs them through
``asyncio.to_thread``.
"""

import logging
import shutil
import zipfile
from pathlib import Path

from app.errors import PackagingError
from app.services.jobs.job_manager import write_job_log
from app.services.jobs.models import Job

logger = logging.getLogger(__name__)


def copy_workspace_to_output(job: Job) -> int:
    """Recursively copy every workspace file into the output dir.

    Existing files are overwritten.  Returns the number of files copied.
    """
    src_root = job.paths.workspace_dir
    dest_root = job.paths.output_dir
    dest_root.mkdir(parents=True, exist_ok=True)

    copied = 0
    for src in sorted(src_root.rglob("*")):
        if not src.is_file():
            continue
        dest = dest_root / src.relative_to(src_root)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dest)
        copied += 1

    write_job_log(job, f"Copied {copied} file(s) to {dest_root}")
    return copied


def list_output_files(job: Job) -> list[str]:
    """Sorted POSIX-style paths of every file under the output dir."""
    root = job.paths.output_dir
    if not root.is_dir():
        return []
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())


def zip_path_for(job: Job) -> Path:
    """``<job_id>.zip`` next to (not inside) the output dir."""
    return job.paths.output_dir.parent / f"{job.job_id}.zip"


def create_zip_archive(job: Job) -> Path:
    """Package the output dir into one archive whose tree mirrors it exactly.

    Raises
    ------
    PackagingError
        If the output dir is missing or the archive cannot be written.
    """
    root = job.paths.output_dir
    if not root.is_dir():
        raise PackagingError(f"Output directory does not exist: {root}")

    archive = zip_path_for(job)
    try:
        archive.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
            for rel in list_output_files(job):
                zf.write(root / rel, arcname=rel)
    except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        # leave no half-written archive behind
        archive.unlink(missing_ok=True)
        raise PackagingError(f"Failed to create zip for {job.job_id}: {exc}") from exc

    write_job_log(job, f"Created zip archive: {archive} ({archive.stat().st_size} bytes)")
    return archive


def try_create_zip_archive(job: Job) -> Path | None:
    """Non-fatal wrapper: log a :class:`PackagingError` and return ``None``."""
    try:
        return create_zip_archive(job)
    except PackagingError as exc:
        logger.warning("Zip creation failed for %s: %s", job.job_id, exc)
        write_job_log(job, f"Zip creation failed (non-fatal): {exc}")
        return None
