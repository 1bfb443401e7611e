"""HTTP download of source images."""

from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

import httpx

from qic.config.settings import DownloadConfig
from qic.exceptions import AccessDeniedError, DownloadFailedError
from qic.utils.fs import ensure_directory
from qic.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class DownloadResult:
    """A source image saved to disk."""

    path: Path
    byte_size: int
    content_type: str | None


class HttpDownloader:
    """Stream image URLs to local files with httpx.

    HTTP 403 is reported as `AccessDeniedError` so callers can skip the URL;
    every other failure (status, timeout, transport) is `DownloadFailedError`.
    """

    def __init__(
        self,
        config: DownloadConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or DownloadConfig()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HttpDownloader":
        self._get_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.config.user_agent},
                follow_redirects=True,
                max_redirects=self.config.max_redirects,
                timeout=self.config.timeout,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying client if this downloader created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str, output_path: Path) -> DownloadResult:
        """Download `url` to `output_path`.

        Raises:
            AccessDeniedError: The origin answered 403
            DownloadFailedError: Any other failure
        """
        ensure_directory(output_path.parent)
        client = self._get_client()
        try:
            async with client.stream("GET", url) as response:
                if response.status_code == 403:
                    raise AccessDeniedError(url, status=403)
                response.raise_for_status()
                with open(output_path, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
                content_type = response.headers.get("content-type")
        except AccessDeniedError:
            output_path.unlink(missing_ok=True)
            raise
        except httpx.HTTPStatusError as e:
            output_path.unlink(missing_ok=True)
            raise DownloadFailedError(url, status=e.response.status_code, cause=e) from e
        except httpx.HTTPError as e:
            output_path.unlink(missing_ok=True)
            raise DownloadFailedError(url, cause=e) from e

        byte_size = output_path.stat().st_size
        log.debug("download.done", url=url, path=str(output_path), bytes=byte_size)
        return DownloadResult(path=output_path, byte_size=byte_size, content_type=content_type)
