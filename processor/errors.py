"""Exceptions raised by the processing layer."""
from typing import List, Optional


class RecordInvalid(Exception):
    """A record failed strict validation."""

    def __init__(self, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class RecordNotFound(LookupError):
    """A record with the requested id does not exist."""


class UnknownAttributeError(ValueError):
    """A settings payload contained a key that is not a known attribute."""
