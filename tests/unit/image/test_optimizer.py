"""Tests for the byte-budget image optimizer."""

import io

import pytest
from PIL import Image
from structlog.testing import capture_logs

from qic.config.settings import OptimizerConfig
from qic.exceptions import ImageProcessingError, OptimizationFailedError, UnsupportedFormatError
from qic.image import optimizer as optimizer_module
from qic.image.optimizer import (
    ImageOptimizer,
    SourceMetadata,
    choose_output_extension,
    has_alpha_channel,
    infer_output_format,
    is_upload_supported_extension,
    png_palette_colors,
    read_source_metadata,
)
from tests.helpers import make_noise_image


class TestFormatHelpers:
    """Tests for format selection helpers."""

    def test_infer_output_format(self):
        """Test extensions map to jpeg or png, case-insensitively."""
        assert infer_output_format("a.jpg") == "jpeg"
        assert infer_output_format("a.JPEG") == "jpeg"
        assert infer_output_format("a.png") == "png"

    def test_infer_output_format_rejects_others(self):
        """Test unsupported extensions raise UnsupportedFormatError."""
        with pytest.raises(UnsupportedFormatError, match="Unsupported output format"):
            infer_output_format("a.webp")

    def test_choose_output_extension(self):
        """Test PNG stays PNG and everything else becomes JPEG."""
        assert choose_output_extension("img-1.png") == ".png"
        assert choose_output_extension("img-1.PNG") == ".png"
        assert choose_output_extension("img-1.webp") == ".jpg"
        assert choose_output_extension("img-1.img") == ".jpg"

    def test_upload_supported_extensions(self):
        """Test the platform upload allow-list."""
        for name in ("a.png", "a.jpg", "a.jpeg", "a.gif", "a.tiff", "a.avif"):
            assert is_upload_supported_extension(name)
        assert not is_upload_supported_extension("a.webp")
        assert not is_upload_supported_extension("a")

    def test_png_palette_colors_bounds(self):
        """Test palette size stays within 2..256 and grows with quality."""
        assert png_palette_colors(100) == 256
        assert png_palette_colors(40) == 9
        assert png_palette_colors(0) == 2
        sizes = [png_palette_colors(q) for q in range(40, 101)]
        assert sizes == sorted(sizes)

    def test_has_alpha_channel(self):
        """Test alpha detection across modes."""
        assert has_alpha_channel(Image.new("RGBA", (2, 2)))
        assert has_alpha_channel(Image.new("LA", (2, 2)))
        assert not has_alpha_channel(Image.new("RGB", (2, 2)))


class TestReadSourceMetadata:
    """Tests for read_source_metadata."""

    def test_reads_dimensions_and_alpha(self, tmp_path):
        """Test width, height, alpha and byte size are reported."""
        path = tmp_path / "a.png"
        Image.new("RGBA", (30, 20), (0, 0, 0, 0)).save(path)
        meta = read_source_metadata(path)
        assert (meta.width, meta.height) == (30, 20)
        assert meta.has_alpha is True
        assert meta.byte_size == path.stat().st_size
        assert meta.has_dimensions

    def test_unreadable_file(self, tmp_path):
        """Test non-image data raises ImageProcessingError."""
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        with pytest.raises(ImageProcessingError, match="Cannot read image"):
            read_source_metadata(path)


class TestIterScales:
    """Tests for the scale schedule."""

    def test_schedule(self):
        """Test scales start at 1.0, decrease and stop at the floor."""
        scales = ImageOptimizer().iter_scales()
        assert scales[0] == 1.0
        assert scales[1] == 0.95
        assert all(a > b for a, b in zip(scales, scales[1:], strict=False))
        assert scales[-1] >= 0.55
        assert scales[-1] * 0.95 < 0.55
        assert all(round(s, 3) == s for s in scales)

    def test_custom_floor(self):
        """Test a higher floor shortens the schedule."""
        scales = ImageOptimizer(OptimizerConfig(min_scale=0.9)).iter_scales()
        assert scales == [1.0, 0.95, 0.902] or scales == [1.0, 0.95, 0.903]


class TestOptimize:
    """Tests for ImageOptimizer.optimize with real encodes."""

    def test_jpeg_fits_budget(self, noise_jpeg):
        """Test a noisy JPEG is brought under the budget without fallback."""
        asset = ImageOptimizer().optimize(noise_jpeg, "jpeg", 120_000)

        assert asset.format == "jpeg"
        assert asset.fallback is False
        assert asset.byte_size <= 120_000
        assert 55 <= asset.quality <= 95
        assert asset.width <= 900
        assert asset.width >= round(900 * 0.55)
        with Image.open(io.BytesIO(asset.data)) as img:
            assert img.format == "JPEG"
            assert img.size == (asset.width, asset.height)

    def test_png_fits_budget(self, noise_png):
        """Test a noisy PNG is palette-reduced under the budget."""
        asset = ImageOptimizer().optimize(noise_png, "png", 180_000)

        assert asset.format == "png"
        assert asset.fallback is False
        assert asset.byte_size <= 180_000
        assert 40 <= asset.quality <= 100
        with Image.open(io.BytesIO(asset.data)) as img:
            assert img.format == "PNG"
            assert img.mode == "P"

    def test_alpha_flattened_onto_white_for_jpeg(self, tmp_path):
        """Test transparent areas become white, not black, in JPEG output."""
        path = tmp_path / "alpha.png"
        img = Image.new("RGBA", (400, 400), (0, 0, 0, 0))
        img.paste((200, 0, 0, 255), (100, 100, 300, 300))
        img.save(path)

        asset = ImageOptimizer().optimize(path, "jpeg", 500_000)

        with Image.open(io.BytesIO(asset.data)) as out:
            assert out.mode == "RGB"
            corner = out.getpixel((5, 5))
            center = out.getpixel((200, 200))
        assert all(channel >= 240 for channel in corner)
        assert center[0] > 150 and center[1] < 60

    def test_png_keeps_alpha(self, tmp_path):
        """Test PNG output of a transparent source keeps transparency."""
        path = tmp_path / "alpha.png"
        img = Image.new("RGBA", (64, 64), (0, 0, 0, 0))
        img.paste((0, 0, 255, 255), (16, 16, 48, 48))
        img.save(path)

        asset = ImageOptimizer().optimize(path, "png", 50_000)

        with Image.open(io.BytesIO(asset.data)) as out:
            assert out.convert("RGBA").getpixel((0, 0))[3] < 128

    def test_fallback_when_nothing_fits(self, tmp_path):
        """Test an impossible budget yields the minimum-scale fallback."""
        path = tmp_path / "noise.jpg"
        make_noise_image(300, 300, seed=3).save(path, format="JPEG", quality=90)

        with capture_logs() as logs:
            asset = ImageOptimizer().optimize(path, "jpeg", 128)

        assert asset.fallback is True
        assert asset.scale == 0.55
        assert (asset.width, asset.height) == (165, 165)
        assert asset.quality == 60
        assert asset.byte_size > 128
        events = [e for e in logs if e["event"] == "optimize.result_fallback_over_target"]
        assert len(events) == 1
        assert events[0]["log_level"] == "warning"

    def test_png_fallback_quality(self, tmp_path):
        """Test the PNG fallback uses quality 70."""
        path = tmp_path / "noise.png"
        make_noise_image(100, 100, seed=4).save(path, format="PNG")

        asset = ImageOptimizer().optimize(path, "png", 64)

        assert asset.fallback is True
        assert asset.quality == 70
        assert (asset.width, asset.height) == (55, 55)

    def test_unsupported_format(self, noise_png):
        """Test an output format other than jpeg/png is rejected."""
        with pytest.raises(UnsupportedFormatError):
            ImageOptimizer().optimize(noise_png, "webp", 10_000)

    def test_optimize_to_file(self, noise_png, tmp_path):
        """Test the result is written to the output path in the inferred format."""
        out = tmp_path / "out" / "small.jpg"
        asset = ImageOptimizer().optimize_to_file(noise_png, out, 60_000)

        assert out.read_bytes() == asset.data
        assert asset.format == "jpeg"

    def test_optimize_to_file_unsupported_extension(self, noise_png, tmp_path):
        """Test a .webp output path is rejected before encoding."""
        with pytest.raises(UnsupportedFormatError):
            ImageOptimizer().optimize_to_file(noise_png, tmp_path / "x.webp", 60_000)


class TestSearchPolicy:
    """Tests for the search policy with a synthetic encoder."""

    @pytest.fixture
    def wide_image(self, tmp_path):
        path = tmp_path / "wide.png"
        Image.new("RGB", (1000, 10), (255, 255, 255)).save(path)
        return path

    @pytest.fixture
    def fake_render(self, monkeypatch):
        """Encoded size = width * quality, so budgets map to exact choices."""
        calls = []

        def render(self, base, size, output_format, quality):
            width = size[0] if size else base.size[0]
            calls.append((width, quality))
            return b"x" * (width * quality)

        monkeypatch.setattr(ImageOptimizer, "render", render)
        return calls

    def test_prefers_full_scale_with_highest_quality(self, wide_image, fake_render):
        """Test quality is lowered before resolution, landing on the highest fit."""
        asset = ImageOptimizer().optimize(wide_image, "jpeg", 76_000)

        assert asset.scale == 1.0
        assert asset.width == 1000
        assert asset.quality == 76
        assert len(fake_render) <= 9

    def test_first_fitting_scale_wins(self, wide_image, fake_render):
        """Test the first (largest) scale with a candidate is accepted."""
        asset = ImageOptimizer().optimize(wide_image, "jpeg", 53_000)

        assert asset.scale == 0.95
        assert asset.width == 950
        assert asset.quality == 55
        assert not any(width < 950 for width, _ in fake_render)

    def test_png_quality_domain(self, wide_image, fake_render):
        """Test PNG searches quality between 40 and 100."""
        asset = ImageOptimizer().optimize(wide_image, "png", 1000 * 100)

        assert asset.quality == 100
        assert min(q for _, q in fake_render) >= 40

    def test_unknown_dimensions_searches_native_size_once(self, wide_image, fake_render, monkeypatch):
        """Test unknown dimensions skip the scale loop."""
        monkeypatch.setattr(
            optimizer_module,
            "read_source_metadata",
            lambda path: SourceMetadata(width=None, height=None, has_alpha=False, byte_size=1),
        )

        asset = ImageOptimizer().optimize(wide_image, "jpeg", 60_000)

        assert asset.scale is None
        assert asset.width is None
        assert asset.quality == 60
        assert all(width == 1000 for width, _ in fake_render)

    def test_unknown_dimensions_without_fit_fails(self, wide_image, fake_render, monkeypatch):
        """Test unknown dimensions and no fitting quality raise OptimizationFailedError."""
        monkeypatch.setattr(
            optimizer_module,
            "read_source_metadata",
            lambda path: SourceMetadata(width=None, height=None, has_alpha=False, byte_size=1),
        )

        with pytest.raises(OptimizationFailedError, match="unknown dimensions"):
            ImageOptimizer().optimize(wide_image, "jpeg", 10)
