"""Error hierarchy of the substitution pipeline.

Every error here is recoverable: the store turns it into a failed update
outcome, the slot keeps its previous content and the next tick retries.
"""


class SubstitutionError(Exception):
    """Base exception for all pipeline errors."""

    pass


class TransportError(SubstitutionError):
    """Fetching the source document failed (network, timeout, HTTP status)."""

    pass


class ExtractionToolError(SubstitutionError):
    """The external table extraction tool failed or returned unparseable output."""

    pass


class PdfReadError(ExtractionToolError):
    """The text layer of the document could not be read."""

    pass


class MalformedTable(SubstitutionError):
    """An extracted table does not have the expected header/row-group shape."""

    pass


class DateParseError(SubstitutionError):
    """The issue date in the document text is malformed."""

    pass


class DateNotFound(DateParseError):
    """The document text has no "Datum: " label."""

    pass


class PersistenceError(SubstitutionError):
    """Writing an audit record failed. Only ever logged."""

    pass
