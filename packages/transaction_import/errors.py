"""Exception taxonomy for the import pipeline.

Structural errors are fatal for a file and map to HTTP-style status 400;
configuration errors map to 500. Row-level problems never surface as
exceptions (they become :class:`~transaction_import.models.RowRejection`
values), and classifier batch failures are absorbed inside the fallback
classifier.
"""

from __future__ import annotations

from collections.abc import Sequence


class ImportPipelineError(Exception):
    """Base class for errors that stop an import."""

    status_code: int = 400


class StructuralError(ImportPipelineError):
    """The file as a whole cannot be imported."""

    status_code = 400


class EmptyFileError(StructuralError):
    """No header row or no data rows."""


class FileTooLargeError(StructuralError):
    def __init__(self, size: int, limit: int) -> None:
        mib = 1024 * 1024
        label = f"{limit / mib:g}MB" if limit >= mib else f"{limit} bytes"
        super().__init__(f"File size must be less than {label} (got {size} bytes)")
        self.size = size
        self.limit = limit


class UnsupportedFileError(StructuralError):
    """The file extension is not a delimited-text or Excel workbook format."""


class HeaderDetectionError(StructuralError):
    def __init__(self, found_headers: Sequence[str], missing: Sequence[str]) -> None:
        super().__init__(
            "Could not find required columns (date, description, amount); "
            f"missing: {', '.join(missing)}"
        )
        self.found_headers: list[str] = list(found_headers)
        self.missing: list[str] = list(missing)


class NoValidRowsError(StructuralError):
    def __init__(self, errors: Sequence[str]) -> None:
        super().__init__("No valid transactions found")
        self.errors: list[str] = list(errors)


class ClassifierConfigError(ImportPipelineError):
    """Credentials for the external classifier are missing."""

    status_code = 500


class StructuredResponseError(ValueError):
    """The model reply could not be turned into one result per batch item."""


__all__ = [
    "ClassifierConfigError",
    "EmptyFileError",
    "FileTooLargeError",
    "HeaderDetectionError",
    "ImportPipelineError",
    "NoValidRowsError",
    "StructuralError",
    "StructuredResponseError",
    "UnsupportedFileError",
]
