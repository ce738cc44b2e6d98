"""Error taxonomy shared by discovery, introspection and usage scanning.

Every error raised by the analyzer derives from ReflectorError so callers
(tools.py, the CLI) can turn it into a structured response in one place.
"""


class ReflectorError(Exception):
    """Base class for all analyzer errors."""

    kind = "error"


class NotFoundError(ReflectorError):
    """A requested class, file or directory does not exist, or a filtered
    discovery produced nothing."""

    kind = "not_found"


class ClassNotFoundError(NotFoundError):
    """Raised when a class reference cannot be resolved to a declaration."""

    def __init__(self, class_name: str):
        self.class_name = class_name
        super().__init__(f"Class not found: {class_name}")


class MalformedInputError(ReflectorError):
    """A source file could not be read or tokenized."""

    kind = "malformed_input"


class TokenizeError(MalformedInputError):
    """Raised by the tokenizer when source text cannot be encoded as UTF-8."""


class InvalidParameterError(ReflectorError):
    """A request parameter is missing or out of range."""

    kind = "invalid_parameter"
