"""Azure Blob Storage engine for multipart upload pipelines."""

__version__ = "1.0.0"
