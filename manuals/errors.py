"""
manuals/errors.py
-----------------
Typed failure taxonomy for the manual engine.

Every error raised across the core boundary is a `ManualError` subclass that
carries the HTTP status the service layer should answer with. Soft failures
(blank extracted text, metadata index hiccups) are logged, never raised.
"""


class ManualError(Exception):
    """Base class for all errors surfaced by the manual engine."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequest(ManualError):
    """Missing identifiers, nothing to ingest, or an empty manual text."""

    status_code = 400


class NotFound(ManualError):
    """No manual for the owner, unknown conversation, or unknown source id."""

    status_code = 404


class Forbidden(ManualError):
    """The resolved owner belongs to a different principal."""

    status_code = 403


class UpstreamError(ManualError):
    """The embedding collaborator failed or timed out during a rebuild."""

    status_code = 503
