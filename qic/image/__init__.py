"""Image download and byte-budget optimization."""

from qic.image.downloader import DownloadResult, HttpDownloader
from qic.image.optimizer import (
    ImageOptimizer,
    OptimizedAsset,
    SourceMetadata,
    choose_output_extension,
    infer_output_format,
    is_upload_supported_extension,
    read_source_metadata,
)

__all__ = [
    "DownloadResult",
    "HttpDownloader",
    "ImageOptimizer",
    "OptimizedAsset",
    "SourceMetadata",
    "choose_output_extension",
    "infer_output_format",
    "is_upload_supported_extension",
    "read_source_metadata",
]
