"""
Error taxonomy for image ingestion and tag queries.

Every error may carry the name of the pipeline step that raised it in
``step`` (``read``, ``extract``, ``build``, ``persist``, ``attach``,
``retrieve``); it stays ``None`` outside the ingestion pipeline.
"""


class ImageServiceError(Exception):
    step: str | None = None


class ImageFileError(ImageServiceError, OSError):
    """The source file could not be read."""


class UnsupportedFormatError(ImageServiceError):
    """The decoder could not identify the image."""


class StoreError(ImageServiceError):
    pass


class StoreReadError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


class NotFoundError(ImageServiceError):
    pass


class RevisionConflict(ImageServiceError):
    """The supplied revision is not the stored one."""


class ConcurrentUpdateConflict(ImageServiceError):
    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class InvalidRuleGroup(ImageServiceError):
    pass
