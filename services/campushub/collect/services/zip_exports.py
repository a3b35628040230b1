"""Streaming ZIP assembly for submission exports.

zipfly reads archive members from the filesystem, so each entry is fetched
into a working directory right before zipfly asks for it and removed once it
has been written. Only one fetched entry is on disk at a time.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
import logging
import os
import posixpath
import shutil
import tempfile
from typing import Callable, Iterable, Iterator

import zipfly

from .export_format import _csv_line

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
MANIFEST_NAME = "manifest.csv"
SKIPPED_NAME = "skipped_files.csv"


@dataclass
class ExportStreamReport:
    written: list[str] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)
    finalized: bool = False

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def reserve_archive_path(primary: str, used_paths: set[str]) -> str:
    """Reserve a unique path in the ZIP, inserting " (n)" before the extension on clashes."""
    chosen = primary
    if chosen in used_paths:
        head, tail = posixpath.split(primary)
        stem, ext = posixpath.splitext(tail)
        if not stem:
            stem, ext = tail, ""
        counter = 2
        while chosen in used_paths:
            chosen = posixpath.join(head, f"{stem} ({counter}){ext}")
            counter += 1
    used_paths.add(chosen)
    return chosen


def build_skipped_csv(skipped: list[tuple[str, str]]) -> str:
    return "\n".join(_csv_line(row) for row in [("path", "reason"), *skipped])


def _write_text(path: str, text: str) -> str:
    with open(path, "wb") as handle:
        handle.write(text.encode("utf-8"))
    return path


def _archive_members(
    workdir: str,
    entries: Iterable,
    *,
    manifest_csv: str,
    open_entry: Callable[[object], AbstractContextManager],
    report: ExportStreamReport,
    chunk_size: int,
) -> Iterator[dict]:
    """Lazy zipfly `paths`: resumed by zipfly only after the previous member is written."""
    manifest_path = _write_text(os.path.join(workdir, MANIFEST_NAME), manifest_csv)
    yield {"fs": manifest_path, "n": MANIFEST_NAME}
    os.remove(manifest_path)

    for index, entry in enumerate(entries):
        local_path = os.path.join(workdir, f"entry-{index}")
        try:
            with open_entry(entry) as source, open(local_path, "wb") as target:
                shutil.copyfileobj(source, target, chunk_size)
        except Exception as exc:
            if os.path.exists(local_path):
                os.remove(local_path)
            reason = f"{type(exc).__name__}: {exc}"[:300]
            report.skipped.append((entry.path, reason))
            logger.warning("export_entry_skipped path=%s reason=%s", entry.path, reason)
            continue
        yield {"fs": local_path, "n": entry.path}
        os.remove(local_path)
        report.written.append(entry.path)

    if report.skipped:
        skipped_path = _write_text(os.path.join(workdir, SKIPPED_NAME), build_skipped_csv(report.skipped))
        yield {"fs": skipped_path, "n": SKIPPED_NAME}


def iter_zip_stream(
    entries: Iterable,
    *,
    manifest_csv: str,
    open_entry: Callable[[object], AbstractContextManager],
    report: ExportStreamReport | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[bytes]:
    """Yield ZIP bytes: manifest.csv first, then each entry under `entry.path`.

    `open_entry(entry)` must return a context manager yielding a readable
    binary stream. It is called lazily, right before the entry is written.
    Entries that fail to open or read are skipped, recorded in `report` and
    listed in a trailing skipped_files.csv. Closing the generator stops any
    further fetches.
    """
    report = report if report is not None else ExportStreamReport()
    with tempfile.TemporaryDirectory(prefix="collect-export-") as workdir:
        members = _archive_members(
            workdir,
            entries,
            manifest_csv=manifest_csv,
            open_entry=open_entry,
            report=report,
            chunk_size=chunk_size,
        )
        zgen = zipfly.ZipFly(paths=members, chunksize=chunk_size).generator()
        try:
            for chunk in zgen:
                if chunk:
                    yield chunk
        finally:
            zgen.close()
            members.close()
        report.finalized = True
