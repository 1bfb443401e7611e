"""Byte-budget image optimizer.

Quality at full resolution is reduced first; resolution is reduced only when
no quality in the search domain fits, in small geometric steps. Screenshots
with text stay legible far longer that way than with early downscaling.
"""

import io
import math
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from qic.config.constants import OUTPUT_FORMATS, UPLOAD_SUPPORTED_EXTENSIONS
from qic.config.settings import OptimizerConfig
from qic.exceptions import ImageProcessingError, OptimizationFailedError, UnsupportedFormatError
from qic.utils.fs import ensure_directory
from qic.utils.logging import get_logger

log = get_logger(__name__)

_WHITE = (255, 255, 255)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def infer_output_format(path: Path | str) -> str:
    """Map an output path to ``jpeg`` or ``png``.

    Raises:
        UnsupportedFormatError: For any other extension
    """
    fmt = OUTPUT_FORMATS.get(Path(path).suffix.lower())
    if fmt is None:
        raise UnsupportedFormatError(str(path))
    return fmt


def choose_output_extension(source: Path | str) -> str:
    """PNG sources stay PNG (edges of text survive palette reduction); the rest become JPEG."""
    return ".png" if Path(source).suffix.lower() == ".png" else ".jpg"


def is_upload_supported_extension(path: Path | str) -> bool:
    """Whether the blogging platform accepts uploads with this extension."""
    return Path(path).suffix.lower() in UPLOAD_SUPPORTED_EXTENSIONS


def png_palette_colors(quality: int) -> int:
    """Palette size for a PNG quality value (2..256, monotonic in quality)."""
    quality = max(1, min(100, quality))
    return max(2, min(256, _round_half_up(2 ** (8 * quality / 100))))


def has_alpha_channel(img: Image.Image) -> bool:
    """Whether the image carries transparency."""
    return img.mode in ("RGBA", "LA", "PA") or (
        img.mode == "P" and "transparency" in img.info
    )


@dataclass(frozen=True)
class SourceMetadata:
    """What the optimizer needs to know about a source image."""

    width: int | None
    height: int | None
    has_alpha: bool
    byte_size: int
    format: str | None = None

    @property
    def has_dimensions(self) -> bool:
        return bool(self.width) and bool(self.height)


@dataclass(frozen=True)
class OptimizedAsset:
    """An encoded candidate produced by the optimizer."""

    format: str
    width: int | None
    height: int | None
    scale: float | None
    quality: int
    data: bytes
    fallback: bool = False

    @property
    def byte_size(self) -> int:
        return len(self.data)


def read_source_metadata(path: Path) -> SourceMetadata:
    """Read dimensions and alpha presence without decoding pixel data."""
    byte_size = path.stat().st_size
    try:
        with Image.open(path) as img:
            width, height = img.size
            return SourceMetadata(
                width=width or None,
                height=height or None,
                has_alpha=has_alpha_channel(img),
                byte_size=byte_size,
                format=img.format,
            )
    except (UnidentifiedImageError, OSError) as e:
        raise ImageProcessingError(f"Cannot read image {path.name}: {e}") from e


class ImageOptimizer:
    """Encode an image as JPEG or PNG under a byte budget."""

    def __init__(self, config: OptimizerConfig | None = None) -> None:
        """Initialize the optimizer.

        Args:
            config: Search-space configuration
        """
        self.config = config or OptimizerConfig()

    def load_base(self, path: Path, output_format: str, has_alpha: bool) -> Image.Image:
        """Decode the source into the pixel mode the encoder expects.

        JPEG cannot carry alpha, so transparent sources are composited onto
        white instead of letting the alpha plane be dropped (which turns
        transparent areas black).
        """
        with Image.open(path) as src:
            src.load()
            if output_format == "jpeg":
                if has_alpha:
                    rgba = src.convert("RGBA")
                    base = Image.new("RGB", rgba.size, _WHITE)
                    base.paste(rgba, mask=rgba.getchannel("A"))
                    return base
                return src.convert("RGB")
            return src.convert("RGBA" if has_alpha else "RGB")

    def render(
        self,
        base: Image.Image,
        size: tuple[int, int] | None,
        output_format: str,
        quality: int,
    ) -> bytes:
        """Fully encode `base` at `size` (None keeps native size) and quality."""
        img = base
        if size is not None and size != base.size:
            img = base.resize(size, Image.Resampling.LANCZOS)

        output = io.BytesIO()
        if output_format == "jpeg":
            img.save(
                output,
                format="JPEG",
                quality=quality,
                optimize=True,
                progressive=True,
            )
        else:
            # Palette reduction keeps hard text edges; zlib at maximum effort.
            method = (
                Image.Quantize.FASTOCTREE if img.mode == "RGBA" else Image.Quantize.MEDIANCUT
            )
            paletted = img.quantize(
                colors=png_palette_colors(quality),
                method=method,
                dither=Image.Dither.NONE,
            )
            paletted.save(output, format="PNG", optimize=True, compress_level=9)
        return output.getvalue()

    def find_best_under_target(
        self,
        base: Image.Image,
        output_format: str,
        target_bytes: int,
        size: tuple[int, int] | None = None,
        scale: float | None = None,
    ) -> OptimizedAsset | None:
        """Binary-search the highest quality whose encoding fits `target_bytes`.

        Returns:
            The best fitting candidate, or None when no probed quality fits
        """
        low, high = self.config.quality_range(output_format)
        best: OptimizedAsset | None = None

        for _ in range(self.config.search_iterations):
            if low > high:
                break
            quality = _round_half_up((low + high) / 2)
            data = self.render(base, size, output_format, quality)
            if len(data) <= target_bytes:
                best = OptimizedAsset(
                    format=output_format,
                    width=size[0] if size else None,
                    height=size[1] if size else None,
                    scale=scale,
                    quality=quality,
                    data=data,
                )
                low = quality + 1
            else:
                high = quality - 1

        return best

    def iter_scales(self) -> list[float]:
        """Scales tried in order: 1.0, then geometric steps down to the floor."""
        scales: list[float] = []
        scale = 1.0
        while scale >= self.config.min_scale:
            scales.append(scale)
            scale = _round_half_up(scale * self.config.scale_step * 1000) / 1000
        return scales

    def optimize(
        self,
        input_path: Path,
        output_format: str,
        target_bytes: int,
    ) -> OptimizedAsset:
        """Produce the best encoding of `input_path` under `target_bytes`.

        The first (largest) scale with a fitting quality wins. When nothing
        fits down to the minimum scale, a fallback rendered at the minimum
        scale with a fixed quality is returned even though it is over budget.

        Raises:
            UnsupportedFormatError: `output_format` is not jpeg or png
            OptimizationFailedError: Dimensions are unknown and no quality fits
        """
        if output_format not in ("jpeg", "png"):
            raise UnsupportedFormatError(output_format)

        meta = read_source_metadata(input_path)
        base = self.load_base(input_path, output_format, meta.has_alpha)

        if not meta.has_dimensions:
            best = self.find_best_under_target(base, output_format, target_bytes)
            if best is None:
                raise OptimizationFailedError(str(input_path))
            self._log_result("optimize.result", input_path, meta, best, target_bytes)
            return best

        for scale in self.iter_scales():
            size = (
                max(1, _round_half_up(meta.width * scale)),
                max(1, _round_half_up(meta.height * scale)),
            )
            best = self.find_best_under_target(
                base, output_format, target_bytes, size=size, scale=scale
            )
            if best is not None:
                self._log_result("optimize.result", input_path, meta, best, target_bytes)
                return best
            log.debug("optimize.scale_miss", scale=scale, width=size[0], height=size[1])

        scale = self.config.min_scale
        size = (
            max(1, _round_half_up(meta.width * scale)),
            max(1, _round_half_up(meta.height * scale)),
        )
        quality = self.config.fallback_quality(output_format)
        fallback = OptimizedAsset(
            format=output_format,
            width=size[0],
            height=size[1],
            scale=scale,
            quality=quality,
            data=self.render(base, size, output_format, quality),
            fallback=True,
        )
        self._log_result(
            "optimize.result_fallback_over_target", input_path, meta, fallback, target_bytes
        )
        return fallback

    def optimize_to_file(
        self,
        input_path: Path,
        output_path: Path,
        target_bytes: int,
    ) -> OptimizedAsset:
        """Optimize and write the result; the format follows `output_path`'s extension."""
        output_format = infer_output_format(output_path)
        asset = self.optimize(input_path, output_format, target_bytes)
        ensure_directory(output_path.parent)
        output_path.write_bytes(asset.data)
        return asset

    def _log_result(
        self,
        event: str,
        input_path: Path,
        meta: SourceMetadata,
        asset: OptimizedAsset,
        target_bytes: int,
    ) -> None:
        fields = {
            "input": input_path.name,
            "format": asset.format,
            "original": {"width": meta.width, "height": meta.height, "bytes": meta.byte_size},
            "selected": {
                "width": asset.width,
                "height": asset.height,
                "scale": asset.scale,
                "quality": asset.quality,
                "bytes": asset.byte_size,
            },
            "target_bytes": target_bytes,
        }
        if asset.fallback:
            log.warning(event, **fields)
        else:
            log.info(event, **fields)
