"""Custom exceptions for archive ingestion failures."""


class IngestionError(Exception):
    """Base exception for ingestion errors."""


class ArchiveError(IngestionError):
    """Raised when the uploaded archive cannot be opened."""


class EntryError(IngestionError):
    """Raised when one archive entry cannot be processed."""


class EntryDecodeError(EntryError):
    """Raised when an archive entry cannot be decoded to text."""


class EntryReadError(EntryError):
    """Raised when an archive entry cannot be decompressed."""


class MissingColumnsError(EntryError):
    """Raised when a known file lacks its required columns."""


class AggregateStoreError(IngestionError):
    """Raised when the aggregate store cannot be read or written."""


class PipelineCancelledError(IngestionError):
    """Raised at a batch boundary after cancellation was requested."""
