"""
Unified hierarchy of error types. These inherit from standard errors like
ValueError and FileNotFoundError but are more fine-grained.
"""

from typing import Optional, Tuple, Type


class MdtagsRuntimeError(ValueError):
    """Base class for mdtags runtime errors."""

    pass


class UnexpectedError(MdtagsRuntimeError):
    """For unexpected errors or runtime check failures."""

    pass


class SelfExplanatoryError(MdtagsRuntimeError):
    """Common errors that arise from 'normal' problems that are largely self-explanatory,
    i.e., no stack trace should be necessary when reporting to the user."""

    pass


class InvalidInput(SelfExplanatoryError):
    """Raised when the wrong kind of input is given to an operation."""

    pass


class InvalidQuery(InvalidInput):
    """
    Base class for tag query errors. Records the offending token and its
    position in the token list, when known.
    """

    def __init__(self, message: str, token: Optional[str] = None, position: Optional[int] = None):
        super().__init__(message)
        self.token = token
        self.position = position


class QuerySyntaxError(InvalidQuery):
    """Raised on an unexpected token, trailing tokens, or a missing operand."""

    pass


class InvalidTagError(InvalidQuery):
    """Raised when a tag contains characters outside `[A-Za-z0-9_-]`."""

    pass


class EmptyQueryError(InvalidQuery):
    """Raised when a query has no tokens at all."""

    pass


class NoMatch(InvalidInput):
    """Raised when no notes or no content match a query."""

    pass


class FileNotFound(InvalidInput, FileNotFoundError):
    """Raised when a file or directory is not found."""

    pass


NONFATAL_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    SelfExplanatoryError,
    FileNotFoundError,
    IOError,
)
"""Exceptions that are not fatal and usually don't merit a full stack trace."""


def is_fatal(exception: Exception) -> bool:
    for e in NONFATAL_EXCEPTIONS:
        if isinstance(exception, e):
            return False
    return True


## Tests


def test_error_hierarchy():
    err = QuerySyntaxError("Expected tag, found AND", token="AND", position=2)
    assert isinstance(err, InvalidQuery)
    assert isinstance(err, ValueError)
    assert err.token == "AND"
    assert err.position == 2
    assert not is_fatal(err)
    assert not is_fatal(FileNotFound("missing"))
    assert is_fatal(UnexpectedError("bug"))
    assert isinstance(FileNotFound("x"), FileNotFoundError)
