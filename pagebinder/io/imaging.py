"""Grayscale cover detection for page images.

Responsibilities:
- Compute the estimated fraction of gray pixels in one encoded image.
- Classify pages as probable covers against a 0-100 sensibility threshold.
- Run batches of classifications on a CPU worker pool from async code.

Design:
- Pixel work happens in `grayscale_fraction`, a module-level function over raw bytes
  so it can be shipped to a `ProcessPoolExecutor`.
- File reads happen on threads under an `asyncio.Semaphore`; the CPU batch is
  awaited as a whole through `run_in_executor`.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import Executor, ProcessPoolExecutor
import io
import os
from pathlib import Path
from typing import Sequence

from PIL import Image


ANALYSIS_MAX_DIMENSION = 500
SAMPLE_STEP = 10
GRAY_CHANNEL_TOLERANCE = 10
DEFAULT_SENSIBILITY = 75


def grayscale_fraction(data: bytes) -> float | None:
    """Return the sampled fraction of gray pixels, or `None` if decoding fails.

    The image is downscaled so its largest side is at most 500 px, then every
    10th pixel on both axes is inspected. A pixel counts as gray when every pair
    of RGB channels differs by at most 10.
    """

    try:
        with Image.open(io.BytesIO(data)) as image:
            rgb = image.convert("RGB")
    except (OSError, ValueError, Image.DecompressionBombError):
        return None

    rgb.thumbnail((ANALYSIS_MAX_DIMENSION, ANALYSIS_MAX_DIMENSION))
    width, height = rgb.size
    pixels = rgb.load()
    sampled = 0
    gray = 0
    for y in range(0, height, SAMPLE_STEP):
        for x in range(0, width, SAMPLE_STEP):
            red, green, blue = pixels[x, y]
            sampled += 1
            if (
                abs(red - green) <= GRAY_CHANNEL_TOLERANCE
                and abs(green - blue) <= GRAY_CHANNEL_TOLERANCE
                and abs(red - blue) <= GRAY_CHANNEL_TOLERANCE
            ):
                gray += 1
    if sampled == 0:
        return None
    return gray / sampled


def exceeds_sensibility(fraction: float, sensibility: int) -> bool:
    """Return whether a gray fraction marks a page as a probable cover."""

    return fraction > sensibility / 100.0


def is_probable_cover(page: Path, sensibility: int = DEFAULT_SENSIBILITY) -> bool:
    """Classify one page synchronously.

    Undecodable or unreadable pages are never covers.
    """

    try:
        data = page.read_bytes()
    except OSError:
        return False
    fraction = grayscale_fraction(data)
    if fraction is None:
        return False
    return exceeds_sensibility(fraction, sensibility)


def _read_bytes_or_none(page: Path) -> bytes | None:
    try:
        return page.read_bytes()
    except OSError:
        return None


def _fraction_or_none(data: bytes | None) -> float | None:
    if data is None:
        return None
    return grayscale_fraction(data)


class CoverDetector:
    """Batch cover classifier backed by a CPU worker pool.

    Args:
        executor: Pool used for pixel analysis. When omitted a
            `ProcessPoolExecutor` is created lazily and owned by the detector.
        max_workers: Worker count for the owned pool.
        concurrency_limit: Bound on concurrent file reads; defaults to CPU count.
    """

    def __init__(
        self,
        *,
        executor: Executor | None = None,
        max_workers: int | None = None,
        concurrency_limit: int | None = None,
    ) -> None:
        self._executor = executor
        self._owns_executor = executor is None
        self._max_workers = max_workers
        self._concurrency_limit = concurrency_limit or os.cpu_count() or 1

    def _pool(self) -> Executor:
        if self._executor is None:
            self._executor = ProcessPoolExecutor(max_workers=self._max_workers)
        return self._executor

    async def _read_all(self, pages: Sequence[Path]) -> list[bytes | None]:
        semaphore = asyncio.Semaphore(self._concurrency_limit)

        async def read_one(page: Path) -> bytes | None:
            async with semaphore:
                return await asyncio.to_thread(_read_bytes_or_none, page)

        return list(await asyncio.gather(*(read_one(page) for page in pages)))

    async def grayscale_fractions(self, pages: Sequence[Path]) -> list[float | None]:
        """Return one gray fraction per page, `None` where a page is unusable."""

        if not pages:
            return []
        payloads = await self._read_all(pages)
        pool = self._pool()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: list(pool.map(_fraction_or_none, payloads)),
        )

    async def detect(
        self,
        pages: Sequence[Path],
        sensibility: int = DEFAULT_SENSIBILITY,
    ) -> list[bool | None]:
        """Classify pages as covers; `None` marks pages that could not be decoded."""

        fractions = await self.grayscale_fractions(pages)
        return [
            None if fraction is None else exceeds_sensibility(fraction, sensibility)
            for fraction in fractions
        ]

    def close(self) -> None:
        """Shut down the owned worker pool, if one was started."""

        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> CoverDetector:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
