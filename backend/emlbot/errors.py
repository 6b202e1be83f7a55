"""
Exception types raised by the service layer.

Routes translate request-level problems into HTTPException directly; these
types are for failures inside the file pipeline, which are caught at the
pipeline boundary and turned into a short notice in the reply thread.
"""


class EmlBotError(Exception):
    """Base class for pipeline failures."""


class DownloadError(EmlBotError):
    """The attachment could not be fetched from the platform."""


class FileTooLargeError(DownloadError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"File is {size} bytes; limit is {limit} bytes")
        self.size = size
        self.limit = limit


class UnsupportedDocumentError(EmlBotError):
    """Raised when the extractor is handed a file it does not understand."""


class StoreUnavailableError(EmlBotError):
    """The key-value store rejected or failed a read/write."""
