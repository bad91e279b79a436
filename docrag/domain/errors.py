# docrag/domain/errors.py


class DocRagError(Exception):
    """Base class for every error raised by the retrieval engine."""


class ValidationError(DocRagError, ValueError):
    """Caller supplied unusable input (empty text, empty question, bad params)."""


class EmbeddingServiceError(DocRagError):
    """Embedding backend unreachable or returned something that is not a vector."""


class CompletionServiceError(DocRagError):
    """Completion backend unreachable or returned no text."""


class IndexNotFoundError(DocRagError):
    """Queried a location where nothing has been indexed yet."""


class EmptyCollectionError(DocRagError):
    """Segmentation produced nothing, or a collection holds zero records."""


class DimensionMismatchError(DocRagError):
    """Query and record vectors share no comparable dimensions."""


class CorruptIndexError(DocRagError):
    """Persisted index failed schema validation on load."""


class EmbeddingModelMismatchError(ValidationError):
    """
    Query embedding model differs from the one the collection was built with.
    Vectors from different models live in different spaces, so the collection
    must be re-indexed in full.
    """


class DocumentLoadError(ValidationError):
    """Source file missing, unreadable, or of an unsupported type."""
