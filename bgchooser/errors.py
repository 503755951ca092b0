# bgchooser/errors.py
from typing import Optional


class BGChooserError(Exception):
    pass


class BackendError(BGChooserError):
    """バックエンドが 2xx 以外 / 読めない本文を返した、または通信できなかった。"""

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.detail
        return f"{self.status_code}: {self.detail}"


class SnapshotError(BGChooserError):
    pass


class CollectionImportError(BGChooserError):
    pass


class VoteSubmitError(BGChooserError):
    pass


class PushChannelError(BGChooserError):
    pass


class CatalogError(BGChooserError):
    pass


class CatalogTimeoutError(CatalogError):
    def __init__(self, attempts: int):
        super().__init__(f"catalog still processing after {attempts} attempts")
        self.attempts = attempts
