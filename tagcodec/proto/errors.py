"""Exception hierarchy for tagcodec protocols and struct bindings.

Errors raised deep inside a protocol are re-raised by each enclosing layer
with a prefix describing what was being done (see ``prepend_error``), so the
outermost caller sees one message carrying the full context while the
original failure stays reachable through ``__cause__``.
"""


class CodecError(RuntimeError):
    """Base exception for encode and decode failures."""

    def __init__(
        self,
        message: str,
        *,
        struct_name: str | None = None,
        field_id: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.struct_name = struct_name
        self.field_id = field_id

    def __str__(self) -> str:
        return self.message


class TransportError(CodecError):
    """Raised when the underlying stream fails."""


class EndOfStreamError(TransportError):
    """Raised when the stream ends before a value is complete."""


class ProtocolError(CodecError):
    """Raised when the encoded data is malformed."""


class MalformedTagError(ProtocolError):
    """Raised for an unknown or invalid wire-type tag."""


class SizeLimitError(ProtocolError):
    """Raised for a negative or implausibly large length or count."""


class DepthLimitError(ProtocolError):
    """Raised when values are nested deeper than the configured bound."""


class BadVersionError(ProtocolError):
    """Raised when a message header has the wrong protocol id or version."""


class InvalidDataError(ProtocolError):
    """Raised for malformed payloads not covered by a more specific error."""


def prepend_error(prefix: str, err: BaseException) -> CodecError:
    """Return a copy of ``err`` with ``prefix`` prepended to its message.

    Codec errors keep their class and context attributes. An ``OSError``
    becomes a ``TransportError`` and anything else a plain ``CodecError``.
    The original exception is chained as ``__cause__``.
    """
    if isinstance(err, CodecError):
        wrapped = type(err)(
            prefix + err.message,
            struct_name=err.struct_name,
            field_id=err.field_id,
        )
    elif isinstance(err, OSError):
        wrapped = TransportError(prefix + str(err))
    else:
        wrapped = CodecError(prefix + str(err))
    wrapped.__cause__ = err
    return wrapped


def root_cause(err: BaseException) -> BaseException:
    """Follow the ``__cause__`` chain back to the original failure."""
    while err.__cause__ is not None:
        err = err.__cause__
    return err
