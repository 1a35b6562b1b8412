"""
Read-only client for the source provider.

Source assets are plain public URLs, so this is a thin httpx wrapper that
probes reachability and downloads payloads with bounded retries.
"""
import time
from typing import Callable, Optional

import httpx

from asset_relocator.core.exceptions import AssetTooLarge, DownloadExhausted
from asset_relocator.core.logging_config import LogCategory, log_debug, log_warning

NOT_FOUND_STATUSES = {404, 410}


class SourceClient:
    """HEAD/GET access to source provider URLs."""

    def __init__(
        self,
        *,
        probe_timeout: float = 10.0,
        download_timeout: float = 60.0,
        retries: int = 3,
        retry_delay: float = 1.0,
        max_size_bytes: int = 100 * 1024 * 1024,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.probe_timeout = probe_timeout
        self.download_timeout = download_timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self.max_size_bytes = max_size_bytes
        self._sleep = sleep
        self._client = httpx.Client(
            transport=transport,
            follow_redirects=True,
            timeout=download_timeout,
        )

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.BaseTransport] = None) -> "SourceClient":
        return cls(
            probe_timeout=settings.source_probe_timeout,
            download_timeout=settings.download_timeout,
            retries=settings.download_retries,
            retry_delay=settings.download_retry_delay,
            max_size_bytes=settings.max_asset_size_bytes,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "SourceClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def is_missing(self, url: str) -> bool:
        """
        True only when the source definitively reports the object as gone.

        Any other probe problem (timeouts, 403 on HEAD, 5xx) is left for the
        download step to retry or fail.
        """
        try:
            response = self._client.head(url, timeout=self.probe_timeout)
        except httpx.HTTPError as exc:
            log_warning(
                f"Source probe failed, continuing with download: {exc}",
                category=LogCategory.TRANSFER,
                url=url,
            )
            return False
        return response.status_code in NOT_FOUND_STATUSES

    def download(self, url: str) -> bytes:
        """
        Fetch the full payload.

        Attempt ``n`` (1-based) that fails waits ``retry_delay * n`` seconds
        before the next attempt.

        Raises:
            AssetTooLarge: When the payload exceeds the size ceiling (not retried)
            DownloadExhausted: When every attempt failed
        """
        last_error = "no attempts made"
        for attempt in range(1, self.retries + 1):
            try:
                return self._download_once(url)
            except AssetTooLarge:
                raise
            except httpx.HTTPError as exc:
                last_error = str(exc) or exc.__class__.__name__
                if attempt == self.retries:
                    break
                log_warning(
                    f"Download failed (attempt {attempt}/{self.retries}), retrying...",
                    category=LogCategory.TRANSFER,
                    url=url,
                    error=last_error,
                )
                self._sleep(self.retry_delay * attempt)
        raise DownloadExhausted(url, self.retries, last_error)

    def _download_once(self, url: str) -> bytes:
        with self._client.stream("GET", url, timeout=self.download_timeout) as response:
            response.raise_for_status()

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > self.max_size_bytes:
                raise AssetTooLarge(url, self.max_size_bytes)

            buffer = bytearray()
            for chunk in response.iter_bytes():
                buffer.extend(chunk)
                if len(buffer) > self.max_size_bytes:
                    raise AssetTooLarge(url, self.max_size_bytes)

        log_debug("Downloaded source object", category=LogCategory.TRANSFER, url=url, size=len(buffer))
        return bytes(buffer)
