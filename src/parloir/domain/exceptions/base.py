"""
Base domain exceptions.
"""


class ParloirError(Exception):
    """Base exception for all Parloir domain errors."""

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(self.message)
