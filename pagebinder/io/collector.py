"""Filesystem discovery of chapter directories and page images.

Responsibilities:
- Enumerate chapter directories under a source root at a configured depth.
- List page images per chapter concurrently under a bounded semaphore.
- Order chapters and pages deterministically with `PathComparator`s.
- Record soft collection problems as findings instead of failing.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Sequence

from ..errors import FilesystemError
from ..models.datatypes import (
    AnalyzeFinding,
    Chapter,
    CollectionDepth,
    CollectionResult,
    PermissionDenied,
    UnsupportedImageFormat,
    merge_findings,
    negative,
    warning,
)
from .ordering import (
    NaturalOrder,
    PathComparator,
    missing_identifier_findings,
    sort_paths,
)
from .paths import extension_of, has_supported_extension, is_hidden


def _list_directory(path: Path) -> list[Path]:
    return list(path.iterdir())


def _list_subdirectories(path: Path) -> list[Path]:
    return [entry for entry in _list_directory(path) if not is_hidden(entry) and entry.is_dir()]


def _list_files(path: Path) -> list[Path]:
    return [entry for entry in _list_directory(path) if not is_hidden(entry) and entry.is_file()]


class PathCollector:
    """Collect ordered chapters of ordered page paths from a source tree.

    Args:
        chapter_comparator: Ordering for chapter directories; natural order by default.
        page_comparator: Ordering for pages within a chapter; natural order by default.
        concurrency_limit: Default bound on concurrent directory listings.
    """

    def __init__(
        self,
        *,
        chapter_comparator: PathComparator | None = None,
        page_comparator: PathComparator | None = None,
        concurrency_limit: int | None = None,
    ) -> None:
        self._chapter_comparator = chapter_comparator or NaturalOrder()
        self._page_comparator = page_comparator or NaturalOrder()
        self._concurrency_limit = concurrency_limit

    async def collect_chapters(
        self,
        root: Path,
        depth: CollectionDepth = CollectionDepth.DEEP,
    ) -> tuple[Path, ...]:
        """Return chapter directories under `root` in chapter order.

        Raises:
            FilesystemError: If `root` is missing, not a directory, or unreadable.
        """

        root = Path(root)
        if not root.exists():
            raise FilesystemError(
                stage="collect",
                detail=f"Source directory does not exist: {root}",
                path=root,
                hint="Check the source path and try again.",
            )
        if not root.is_dir():
            raise FilesystemError(
                stage="collect",
                detail=f"Source path is not a directory: {root}",
                path=root,
            )
        if depth == CollectionDepth.SHALLOW:
            return (root,)

        chapter_dirs = await asyncio.to_thread(self._list_root, root)
        return tuple(sort_paths(chapter_dirs, self._chapter_comparator))

    @staticmethod
    def _list_root(root: Path) -> list[Path]:
        try:
            return _list_subdirectories(root)
        except OSError as exc:
            raise FilesystemError(
                stage="collect",
                detail=f"Source directory is not readable: {root} ({exc.strerror or exc})",
                path=root,
                hint="Check directory permissions.",
            ) from exc

    async def collect_pages(
        self,
        chapter_paths: Sequence[Path],
        concurrency_limit: int | None = None,
        root: Path | None = None,
    ) -> CollectionResult:
        """List and order page images of every chapter directory.

        Chapters whose listing fails, or that contain no supported images, are
        excluded and reported as findings. A failure to list `root` itself is
        fatal.
        """

        limit = concurrency_limit or self._concurrency_limit or os.cpu_count() or 1
        semaphore = asyncio.Semaphore(limit)

        async def list_one(chapter_path: Path) -> list[Path] | OSError:
            async with semaphore:
                try:
                    return await asyncio.to_thread(_list_files, chapter_path)
                except OSError as exc:
                    return exc

        listings = await asyncio.gather(*(list_one(path) for path in chapter_paths))

        chapters: list[Chapter] = []
        findings: list[AnalyzeFinding] = []
        for chapter_path, listing in zip(chapter_paths, listings):
            if isinstance(listing, OSError):
                if root is not None and Path(chapter_path) == Path(root):
                    raise FilesystemError(
                        stage="collect",
                        detail=f"Source directory is not readable: {chapter_path}",
                        path=Path(chapter_path),
                        hint="Check directory permissions.",
                    ) from listing
                findings.append(self._listing_failure(Path(chapter_path), listing))
                continue

            pages: list[Path] = []
            for entry in listing:
                if has_supported_extension(entry):
                    pages.append(entry)
                else:
                    findings.append(
                        UnsupportedImageFormat(
                            path=entry,
                            detected_ext=extension_of(entry) or "unknown",
                        )
                    )

            if not pages:
                findings.append(
                    warning(f"Chapter directory has no supported images: {chapter_path}")
                )
                continue

            ordered = sort_paths(pages, self._page_comparator)
            findings.extend(missing_identifier_findings(ordered, self._page_comparator))
            chapters.append(Chapter(path=Path(chapter_path), pages=tuple(ordered)))

        if not chapter_paths:
            findings.append(negative("No chapter directories found in the source."))
        elif not chapters:
            findings.append(negative("No page images found in the source."))

        return CollectionResult(chapters=tuple(chapters), findings=merge_findings(findings))

    @staticmethod
    def _listing_failure(path: Path, exc: OSError) -> AnalyzeFinding:
        if isinstance(exc, PermissionError):
            return PermissionDenied(path=path)
        if isinstance(exc, FileNotFoundError):
            return warning(f"Chapter directory vanished during collection: {path}")
        return warning(f"Chapter directory could not be listed: {path} ({exc.strerror or exc})")

    async def collect(
        self,
        root: Path,
        depth: CollectionDepth = CollectionDepth.DEEP,
        concurrency_limit: int | None = None,
    ) -> CollectionResult:
        """Collect chapter directories and their pages in one call."""

        root = Path(root)
        chapter_paths = await self.collect_chapters(root, depth)
        chapter_findings = missing_identifier_findings(
            [path for path in chapter_paths if path != root],
            self._chapter_comparator,
        )
        result = await self.collect_pages(
            chapter_paths,
            concurrency_limit=concurrency_limit,
            root=root,
        )
        return CollectionResult(
            chapters=result.chapters,
            findings=merge_findings(chapter_findings, result.findings),
        )
