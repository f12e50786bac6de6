from __future__ import annotations

from typing import Optional


class MarketDataError(Exception):
    pass


class DownloadFailed(MarketDataError):
    def __init__(self, url: str, cause: Optional[BaseException] = None, status_code: Optional[int] = None):
        self.url = url
        self.cause = cause
        self.status_code = status_code
        detail = f"HTTP {status_code}" if status_code is not None else repr(cause)
        super().__init__(f"Download failed for {url}: {detail}")


class SourceUnreachable(DownloadFailed):
    """The data source could not be contacted at all (DNS, refused, timeout)."""


class ValidationFailed(MarketDataError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class EmptyFile(ValidationFailed):
    pass


class HeaderShapeInvalid(ValidationFailed):
    pass


class NoValidRegions(ValidationFailed):
    pass


class ParseFailed(MarketDataError):
    pass


class CacheCorrupt(MarketDataError):
    pass


class CacheWriteFailed(MarketDataError):
    pass


class LoadFailed(MarketDataError):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)
