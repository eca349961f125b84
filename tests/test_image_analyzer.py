import io
import random

import httpx
import numpy as np
import pytest
from PIL import Image

from reality_check.errors import ImageDecodeError
from reality_check.image_analyzer import (
    ImageAnalyzer,
    decode_rgba,
    detect_compression,
    score_signals,
    status_for_score,
)
from reality_check.models import ColorSignals, CompressionSignals, ImageSignals, ManipulationSignals
from reality_check.sources import SourcePolicy


def png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def solid_png() -> bytes:
    return png_bytes(Image.new("RGB", (64, 64), (200, 30, 30)))


def noise_png() -> bytes:
    pixels = np.random.default_rng(0).integers(0, 256, size=(64, 64, 3), dtype=np.uint8)
    return png_bytes(Image.fromarray(pixels))


def serve(content: bytes):
    def handler(request):
        return httpx.Response(200, content=content, headers={"Content-Type": "image/png"})

    return handler


@pytest.mark.parametrize(
    "score,status",
    [(100, "verified"), (80, "verified"), (79, "suspicious"), (60, "suspicious"), (59, "manipulated"), (0, "manipulated")],
)
def test_status_thresholds(score, status):
    assert status_for_score(score) == status


def test_decode_rgba_layout():
    data, w, h = decode_rgba(solid_png())
    assert (w, h) == (64, 64)
    assert data.dtype == np.uint8
    assert data.size == 64 * 64 * 4
    assert list(data[:4]) == [200, 30, 30, 255]


def test_decode_rgba_downscales_large_images():
    data, w, h = decode_rgba(png_bytes(Image.new("RGB", (200, 100), (0, 0, 0))), max_pixels=5000)
    assert w * h <= 5000
    assert data.size == w * h * 4


def test_decode_rejects_non_images():
    with pytest.raises(ImageDecodeError):
        decode_rgba(b"definitely not an image")


def test_flat_image_is_all_blockiness():
    data, _, _ = decode_rgba(solid_png())
    c = detect_compression(data)
    assert c.blockiness == pytest.approx(1.0)
    assert c.artifacts == 0.0
    assert c.compression_level == pytest.approx(1.0)


def test_penalties_accumulate_and_clamp():
    signals = ImageSignals(
        width=10,
        height=10,
        aspect_ratio=1.0,
        color=ColorSignals(unique_colors=2, total_pixels=100, color_diversity=0.02),
        compression=CompressionSignals(blockiness=0.5, artifacts=0.5, compression_level=0.9),
        manipulation=ManipulationSignals(edge_artifacts=True, color_inconsistencies=True),
    )
    score, reasons = score_signals(signals)
    assert score == 85 - 10 - 15 - 40 - 10
    assert len(reasons) == 4


def test_clean_diverse_image_scores_verified():
    signals = ImageSignals(
        width=10,
        height=10,
        aspect_ratio=1.0,
        color=ColorSignals(unique_colors=95, total_pixels=100, color_diversity=0.95),
        compression=CompressionSignals(blockiness=0.2, artifacts=0.1, compression_level=0.3),
        manipulation=ManipulationSignals(),
    )
    score, reasons = score_signals(signals)
    assert score == 90
    assert status_for_score(score) == "verified"
    assert reasons[0].startswith("Image shows consistent properties")


async def test_solid_image_is_suspicious(make_client):
    analyzer = ImageAnalyzer(make_client(serve(solid_png())), rng=random.Random(0))
    a = await analyzer.assess("https://images.pexels.com/photos/1/flat.png", article_id="a1")

    assert a.fallback is False
    assert a.authenticity_score == 65
    assert a.status == "suspicious"
    assert a.signals.color.unique_colors == 1
    assert a.signals.color.dominant_colors[0]["rgb"] == "200,30,30"
    assert a.signals.aspect_ratio == 1.0
    assert a.url_context.credibility == "high"
    assert "High compression levels detected" in a.reasoning
    assert a.match_count == 0
    assert a.article_id == "a1"


async def test_noise_image_flags_manipulation(make_client):
    analyzer = ImageAnalyzer(make_client(serve(noise_png())), rng=random.Random(0))
    a = await analyzer.assess("https://cdn.example.com/noise.png")

    assert a.fallback is False
    assert a.signals.manipulation.edge_artifacts is True
    assert a.signals.manipulation.color_inconsistencies is True
    assert a.signals.color.color_diversity > 0.8
    assert a.authenticity_score < 60
    assert a.status == "manipulated"


async def test_unreachable_host_falls_back(offline_client):
    analyzer = ImageAnalyzer(offline_client, rng=random.Random(3))
    for _ in range(20):
        a = await analyzer.assess("https://unreachable.invalid/img.jpg")
        assert a.fallback is True
        assert 70 <= a.authenticity_score <= 99
        assert a.status == status_for_score(a.authenticity_score)
        assert a.signals is None


async def test_undecodable_body_falls_back(make_client):
    analyzer = ImageAnalyzer(make_client(serve(b"<html>not found</html>")), rng=random.Random(3))
    a = await analyzer.assess("https://cdn.example.com/missing.jpg")
    assert a.fallback is True
    assert 70 <= a.authenticity_score <= 99


async def test_http_error_status_falls_back(make_client):
    analyzer = ImageAnalyzer(make_client(lambda request: httpx.Response(404)), rng=random.Random(3))
    a = await analyzer.assess("https://cdn.example.com/gone.jpg")
    assert a.fallback is True


async def test_configured_policy_rates_url_context(offline_client):
    policy = SourcePolicy.from_config({"bbci.co.uk": ["news", "high"]}, subdomain_allowed=["bbci.co.uk"])
    analyzer = ImageAnalyzer(offline_client, policy=policy, rng=random.Random(3))
    a = await analyzer.assess("https://ichef.bbci.co.uk/news/976/photo.jpg")
    assert a.fallback is True
    assert (a.url_context.service, a.url_context.credibility) == ("news", "high")
