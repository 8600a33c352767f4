"""Kernel source acquisition — download and extract a source archive once."""

from __future__ import annotations

import logging
import shutil
import tarfile
import tempfile
from pathlib import Path

import requests

from .context import Context
from .errors import SourceError
from .projects import Project
from .spec import Specification
from .specop import Present

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class SourceArchive(Specification[Project]):
    """The kernel source archive for the project's version, on local disk."""

    def equals(self, ctx: Context[Project]) -> bool:
        return ctx.target.archive_path.is_file()

    def apply(self, ctx: Context[Project]) -> None:
        project = ctx.target
        download(project.url, project.archive_path, timeout=project.download_timeout)

    def remove(self, ctx: Context[Project]) -> None:
        ctx.target.archive_path.unlink(missing_ok=True)


class SourceTree(Specification[Project]):
    """The extracted kernel source directory."""

    def equals(self, ctx: Context[Project]) -> bool:
        return ctx.target.source_dir.is_dir()

    def apply(self, ctx: Context[Project]) -> None:
        project = ctx.target
        extract(project.archive_path, project.source_dir)

    def remove(self, ctx: Context[Project]) -> None:
        shutil.rmtree(ctx.target.source_dir, ignore_errors=True)


def download(url: str, dest: Path, *, timeout: float) -> None:
    """Stream a URL to dest, writing through a .part file.

    The partial file is removed when the download fails, so dest only ever
    exists complete.
    """
    partial = dest.with_name(dest.name + ".part")
    logger.info("Downloading %s", url)
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with partial.open("wb") as fh:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    fh.write(chunk)
    except requests.RequestException as exc:
        partial.unlink(missing_ok=True)
        raise SourceError(f"Failed to download {url}: {exc}") from exc
    partial.replace(dest)
    logger.debug("Saved %s", dest)


def extract(archive: Path, dest: Path) -> None:
    """Extract the archive's single top-level directory to dest.

    Extraction happens in a scratch directory next to dest and is moved into
    place only when complete.
    """
    logger.info("Extracting %s", archive.name)
    scratch = Path(tempfile.mkdtemp(prefix=".extract-", dir=dest.parent))
    try:
        with tarfile.open(archive) as tar:
            tar.extractall(scratch, filter="data")
        entries = list(scratch.iterdir())
        if len(entries) != 1 or not entries[0].is_dir():
            raise SourceError(f"Unexpected layout in {archive.name}: expected one top-level directory")
        entries[0].rename(dest)
    except (tarfile.TarError, OSError) as exc:
        raise SourceError(f"Failed to extract {archive}: {exc}") from exc
    finally:
        shutil.rmtree(scratch, ignore_errors=True)


def acquire_source(ctx: Context[Project]) -> Path:
    """Download and extract the project's kernel source, skipping what exists."""
    project = ctx.target
    project.build_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Acquiring Linux kernel %s in %s", project.version, project.build_dir)
    Present(SourceArchive())(ctx)
    Present(SourceTree())(ctx)
    return project.source_dir
