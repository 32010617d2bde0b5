class CorpGPTError(Exception):
    """Base exception for CorpGPT failures."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class StoreError(CorpGPTError):
    """The persistent store could not complete an operation."""


class WriteError(StoreError):
    """A store mutation (create, append, update, delete) failed."""


class ReadError(StoreError):
    """A store read or subscription could not be established."""


class GenerationError(CorpGPTError):
    """The reply generator failed to produce text."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)
