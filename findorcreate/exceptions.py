class FindOrCreateError(Exception):
    """Base exception for find-or-create errors."""

    pass


class InvalidOptionsError(FindOrCreateError):
    """Options could not be parsed or merged."""

    pass


class InvalidFieldError(FindOrCreateError):
    """An additional field failed validation against the document model."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field
