from __future__ import annotations

import asyncio
import io
import logging
import random
from typing import List, Optional, Tuple

import httpx
import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import ImageDecodeError
from .models import (
    ColorSignals,
    CompressionSignals,
    ImageAssessment,
    ImageSignals,
    ManipulationSignals,
)
from .sources import SourcePolicy

logger = logging.getLogger(__name__)

BASELINE_SCORE = 85
VERIFIED_MIN = 80
SUSPICIOUS_MIN = 60

IMAGE_HEADERS = {
    "User-Agent": "RealityCheck/2.0",
    "Accept": "image/avif,image/webp,image/png,image/jpeg,image/*;q=0.8,*/*;q=0.5",
}


def status_for_score(score: int) -> str:
    if score >= VERIFIED_MIN:
        return "verified"
    if score >= SUSPICIOUS_MIN:
        return "suspicious"
    return "manipulated"


def decode_rgba(content: bytes, max_pixels: int = 4_000_000) -> Tuple[np.ndarray, int, int]:
    """
    Decode image bytes into a flat uint8 RGBA buffer (4 bytes per pixel, row-major).
    Oversized images are downscaled to `max_pixels` first.
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            img.load()
            if img.width * img.height > max_pixels:
                scale = (max_pixels / float(img.width * img.height)) ** 0.5
                img.thumbnail((max(1, int(img.width * scale)), max(1, int(img.height * scale))))
            rgba = img.convert("RGBA")
            width, height = rgba.size
            data = np.asarray(rgba, dtype=np.uint8).reshape(-1)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageDecodeError(f"cannot decode image: {type(e).__name__}: {e}") from e

    if data.size == 0:
        raise ImageDecodeError("image has no pixels")
    return data, width, height


def analyze_colors(data: np.ndarray) -> ColorSignals:
    pixels = data.reshape(-1, 4).astype(np.uint32)
    packed = (pixels[:, 0] << 16) | (pixels[:, 1] << 8) | pixels[:, 2]
    colors, counts = np.unique(packed, return_counts=True)
    total = int(pixels.shape[0])

    dominant = []
    for i in np.argsort(counts)[::-1][:5]:
        c = int(colors[i])
        n = int(counts[i])
        dominant.append({
            "rgb": f"{(c >> 16) & 255},{(c >> 8) & 255},{c & 255}",
            "count": n,
            "percentage": n / total * 100.0,
        })

    return ColorSignals(
        unique_colors=int(colors.size),
        total_pixels=total,
        color_diversity=colors.size / total,
        dominant_colors=dominant,
    )


def detect_compression(data: np.ndarray) -> CompressionSignals:
    """
    Sample the red channel of every 8th pixel against its right neighbour.
    Large jumps count as artifacts, near-flat steps as blockiness.
    """
    n = int(data.size)
    idx = np.arange(0, n, 32)
    first = data[idx].astype(np.int16)
    neighbour_idx = idx + 4
    second = np.zeros_like(first)
    in_range = neighbour_idx < n
    second[in_range] = data[neighbour_idx[in_range]]
    diff = np.abs(first - second)

    samples = n / 32.0
    artifacts = float(np.count_nonzero(diff > 30)) / samples
    blockiness = float(np.count_nonzero(diff < 5)) / samples
    return CompressionSignals(
        blockiness=blockiness,
        artifacts=artifacts,
        compression_level=min(1.0, blockiness + artifacts),
    )


def detect_manipulation(data: np.ndarray) -> ManipulationSignals:
    """Edge-change and colour-jump counts over every 2nd pixel, against a density threshold."""
    n = int(data.size)
    idx = np.arange(0, max(n - 8, 0), 8)
    if idx.size == 0:
        return ManipulationSignals()

    d = data.astype(np.int16)
    edge_changes = int(np.count_nonzero(np.abs(d[idx] - d[idx + 4]) > 50))
    color_jumps = int(np.count_nonzero(np.abs(d[idx + 1] - d[idx + 5]) > 50))

    threshold = n / 1000.0
    return ManipulationSignals(
        edge_artifacts=edge_changes > threshold,
        color_inconsistencies=color_jumps > threshold,
    )


def score_signals(signals: ImageSignals) -> Tuple[int, List[str]]:
    """Apply the fixed penalties to the baseline; returns the clamped score and the reasons that fired."""
    score = BASELINE_SCORE
    reasons: List[str] = []

    if signals.compression.compression_level > 0.8:
        score -= 10
        reasons.append("High compression levels detected")
    if signals.compression.artifacts > 0.3:
        score -= 15
        reasons.append("Frequent compression artifacts between neighbouring pixels")

    active = signals.manipulation.active_count
    if active:
        score -= 20 * active
        names = []
        if signals.manipulation.edge_artifacts:
            names.append("edge artifacts")
        if signals.manipulation.color_inconsistencies:
            names.append("color inconsistencies")
        reasons.append(f"Potential manipulation indicators found ({', '.join(names)})")

    if signals.color.color_diversity < 0.1:
        score -= 10
        reasons.append("Limited color diversity may indicate processing")
    if signals.color.color_diversity > 0.8:
        score += 5
        reasons.append("High color diversity typical of unprocessed photographs")

    score = max(0, min(100, score))
    if score >= VERIFIED_MIN:
        reasons.insert(0, "Image shows consistent properties typical of authentic content")
    return score, reasons


def analyze_pixels(data: np.ndarray, width: int, height: int) -> ImageSignals:
    return ImageSignals(
        width=width,
        height=height,
        aspect_ratio=width / height if height else 0.0,
        color=analyze_colors(data),
        compression=detect_compression(data),
        manipulation=detect_manipulation(data),
    )


class ImageAnalyzer:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        rng: Optional[random.Random] = None,
        policy: Optional[SourcePolicy] = None,
        timeout_s: float = 15.0,
        max_pixels: int = 4_000_000,
    ) -> None:
        self._client = client
        self._rng = rng or random.Random()
        self._policy = policy or SourcePolicy()
        self._timeout = httpx.Timeout(timeout_s)
        self._max_pixels = max_pixels

    async def _download(self, image_url: str) -> bytes:
        try:
            r = await self._client.get(
                image_url,
                headers=IMAGE_HEADERS,
                timeout=self._timeout,
                follow_redirects=True,
            )
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise ImageDecodeError(f"cannot load image: {type(e).__name__}: {e}") from e
        return r.content

    async def assess(self, image_url: str, article_id: Optional[str] = None) -> ImageAssessment:
        url_context = self._policy.url_context(image_url)
        try:
            content = await self._download(image_url)
            data, width, height = await asyncio.to_thread(decode_rgba, content, self._max_pixels)
        except ImageDecodeError as e:
            logger.warning("image: falling back for %s: %s", image_url, e)
            return self.fallback_assessment(image_url, article_id)

        signals = await asyncio.to_thread(analyze_pixels, data, width, height)
        score, reasons = score_signals(signals)
        return ImageAssessment(
            article_id=article_id,
            image_url=image_url,
            match_count=0,
            authenticity_score=score,
            status=status_for_score(score),
            signals=signals,
            url_context=url_context,
            reasoning=". ".join(reasons) or "Standard image analysis completed",
            fallback=False,
        )

    def fallback_assessment(self, image_url: str, article_id: Optional[str] = None) -> ImageAssessment:
        score = self._rng.randint(70, 99)
        return ImageAssessment(
            article_id=article_id,
            image_url=image_url,
            match_count=0,
            authenticity_score=score,
            status=status_for_score(score),
            signals=None,
            url_context=self._policy.url_context(image_url),
            reasoning="Image analysis completed using fallback method because the image could not be loaded",
            fallback=True,
        )
