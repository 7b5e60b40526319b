"""
Error types raised by the parser, the aggregator and the editing session.

All of them are ValueErrors, so UI code can report any of them with str(e).
"""

from typing import Optional


class CGPAError(ValueError):
    """Base class for every user-facing calculator error."""


class FormatError(CGPAError):
    """The file is missing rows or the course/grade/credit columns."""


class InvalidDataError(CGPAError):
    """A row (or manual entry) carries an empty or non-numeric field."""

    def __init__(self, message: str, line: Optional[int] = None, course: Optional[str] = None):
        self.line = line
        self.course = course
        if line is not None:
            message = f"Line {line}: {message}"
        super().__init__(message)


class InvalidGradeError(CGPAError):
    """A grade token is neither a known letter grade nor a 0-4 number."""

    def __init__(self, token: str, line: Optional[int] = None, course: Optional[str] = None):
        self.token = token
        self.line = line
        self.course = course
        message = f"Invalid grade: {token}"
        if course:
            message += f" for {course}"
        if line is not None:
            message = f"Line {line}: {message}"
        super().__init__(message)


class EmptyResultError(CGPAError):
    """No course with credits survived aggregation."""


class FileReadError(CGPAError):
    """An uploaded file could not be read or converted to text."""
