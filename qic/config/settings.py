"""Configuration settings using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict, YamlConfigSettingsSource

from qic.config.constants import (
    ARTIFACTS_SUBDIR,
    BACKUPS_SUBDIR,
    DEFAULT_BROWSER_TIMEOUT,
    DEFAULT_CONCURRENCY,
    DEFAULT_CONFIG_FILE,
    DEFAULT_DELETE_EXTRA_PASSES,
    DEFAULT_DELETE_MAX_PAGES,
    DEFAULT_DELETE_RETRY_CREDITS,
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_LOGIN_TIMEOUT,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_OUT_DIR,
    DEFAULT_PUBLISH_VERIFY_INTERVAL,
    DEFAULT_PUBLISH_VERIFY_TIMEOUT,
    DEFAULT_SCOPE,
    DEFAULT_SETTLE_INTERVAL,
    DEFAULT_SETTLE_TIMEOUT,
    DEFAULT_SUBMIT_TIMEOUT,
    DEFAULT_TARGET_KB,
    DEFAULT_TOLERANCE_RATIO,
    DEFAULT_UPLOAD_TIMEOUT,
    DEFAULT_USER_AGENT,
    FALLBACK_JPEG_QUALITY,
    FALLBACK_PNG_QUALITY,
    JPEG_QUALITY_MAX,
    JPEG_QUALITY_MIN,
    LOGS_SUBDIR,
    MIN_SCALE,
    OPTIMIZED_SUBDIR,
    ORIGINALS_SUBDIR,
    PNG_QUALITY_MAX,
    PNG_QUALITY_MIN,
    SCALE_STEP,
    SEARCH_ITERATIONS,
)


class OptimizerConfig(BaseModel):
    """Search space of the byte-budget optimizer."""

    jpeg_quality_min: int = Field(default=JPEG_QUALITY_MIN, ge=1, le=100)
    jpeg_quality_max: int = Field(default=JPEG_QUALITY_MAX, ge=1, le=100)
    png_quality_min: int = Field(default=PNG_QUALITY_MIN, ge=1, le=100)
    png_quality_max: int = Field(default=PNG_QUALITY_MAX, ge=1, le=100)
    search_iterations: int = Field(default=SEARCH_ITERATIONS, ge=1)
    scale_step: float = Field(default=SCALE_STEP, gt=0.0, lt=1.0)
    min_scale: float = Field(default=MIN_SCALE, gt=0.0, le=1.0)
    fallback_jpeg_quality: int = Field(default=FALLBACK_JPEG_QUALITY, ge=1, le=100)
    fallback_png_quality: int = Field(default=FALLBACK_PNG_QUALITY, ge=1, le=100)

    def quality_range(self, output_format: str) -> tuple[int, int]:
        """Return the (min, max) quality domain for an output format."""
        if output_format == "jpeg":
            return self.jpeg_quality_min, self.jpeg_quality_max
        return self.png_quality_min, self.png_quality_max

    def fallback_quality(self, output_format: str) -> int:
        """Return the fixed quality used when nothing fits the budget."""
        if output_format == "jpeg":
            return self.fallback_jpeg_quality
        return self.fallback_png_quality


class RunConfig(BaseModel):
    """Per-run policy."""

    scope: Literal["all", "single"] = DEFAULT_SCOPE
    target_kb: float = Field(default=DEFAULT_TARGET_KB, gt=0)
    tolerance_ratio: float = Field(default=DEFAULT_TOLERANCE_RATIO, ge=0)
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)
    dry_run: bool = False
    delete_original: bool = False

    @property
    def target_bytes(self) -> int:
        """Target size in bytes."""
        return round(self.target_kb * 1024)


class BrowserConfig(BaseModel):
    """Playwright browser and editing-surface timeouts (seconds)."""

    headless: bool = False
    storage_state_path: str | None = None
    default_timeout: float = Field(default=DEFAULT_BROWSER_TIMEOUT, gt=0)
    login_timeout: float = Field(default=DEFAULT_LOGIN_TIMEOUT, gt=0)
    settle_timeout: float = Field(default=DEFAULT_SETTLE_TIMEOUT, gt=0)
    settle_interval: float = Field(default=DEFAULT_SETTLE_INTERVAL, gt=0)
    publish_verify_timeout: float = Field(default=DEFAULT_PUBLISH_VERIFY_TIMEOUT, gt=0)
    publish_verify_interval: float = Field(default=DEFAULT_PUBLISH_VERIFY_INTERVAL, gt=0)
    submit_timeout: float = Field(default=DEFAULT_SUBMIT_TIMEOUT, gt=0)
    upload_timeout: float = Field(default=DEFAULT_UPLOAD_TIMEOUT, gt=0)


class DeletionConfig(BaseModel):
    """Retry budget for deleting superseded originals."""

    extra_passes: int = Field(default=DEFAULT_DELETE_EXTRA_PASSES, ge=0)
    retry_credits: int = Field(default=DEFAULT_DELETE_RETRY_CREDITS, ge=0)
    max_pages: int = Field(default=DEFAULT_DELETE_MAX_PAGES, ge=1)


class DownloadConfig(BaseModel):
    """HTTP download settings."""

    timeout: float = Field(default=DEFAULT_DOWNLOAD_TIMEOUT, gt=0)
    max_redirects: int = Field(default=DEFAULT_MAX_REDIRECTS, ge=0)
    user_agent: str = DEFAULT_USER_AGENT


class OutputConfig(BaseModel):
    """Output directory layout."""

    out_dir: str = DEFAULT_OUT_DIR

    @property
    def root(self) -> Path:
        return Path(self.out_dir).resolve()

    @property
    def originals_dir(self) -> Path:
        return self.root / ORIGINALS_SUBDIR

    @property
    def optimized_dir(self) -> Path:
        return self.root / OPTIMIZED_SUBDIR

    @property
    def backups_dir(self) -> Path:
        return self.root / BACKUPS_SUBDIR

    @property
    def artifacts_dir(self) -> Path:
        return self.root / ARTIFACTS_SUBDIR

    @property
    def logs_dir(self) -> Path:
        return self.root / LOGS_SUBDIR


class QicSettings(BaseSettings):
    """Main configuration class for QIC."""

    model_config = SettingsConfigDict(
        env_prefix="QIC_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        """Customize settings sources to include YAML file."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=DEFAULT_CONFIG_FILE),
            file_secret_settings,
        )

    # Sub-configurations
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    run: RunConfig = Field(default_factory=RunConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    deletion: DeletionConfig = Field(default_factory=DeletionConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    # Global settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_dir: str | None = None
    storage_state_path: str | None = None  # QIC_STORAGE_STATE_PATH

    def get_log_dir(self) -> Path:
        """Get the log directory (defaults to <out>/logs)."""
        if self.log_dir:
            return Path(self.log_dir)
        return self.output.logs_dir

    def get_storage_state_path(self) -> str | None:
        """Storage state path from the browser section or the top-level env override."""
        return self.browser.storage_state_path or self.storage_state_path


@lru_cache
def get_settings() -> QicSettings:
    """Get cached settings instance."""
    return QicSettings()


def reload_settings() -> QicSettings:
    """Force reload settings (clear cache)."""
    get_settings.cache_clear()
    return get_settings()
