from .base import BaseStorageEngine, IncomingFile, StoredFile
from .azure import AzureBlobStorage, StoreStage, default_blob_name
from .blob_service import BlobService
from .exceptions import ConfigurationError, ContainerSetupError, StorageError, UploadValidationError
from .options import ContainerSecurity, StorageOptions
from .pipeline import UploadPipeline, incoming_file
from .readiness import Operation, PendingRequest, ReadinessState, RequestQueue, get_request_queue

__all__ = [
    "AzureBlobStorage",
    "BaseStorageEngine",
    "BlobService",
    "ConfigurationError",
    "ContainerSecurity",
    "ContainerSetupError",
    "IncomingFile",
    "Operation",
    "PendingRequest",
    "ReadinessState",
    "RequestQueue",
    "StorageError",
    "StorageOptions",
    "StoreStage",
    "StoredFile",
    "UploadPipeline",
    "UploadValidationError",
    "default_blob_name",
    "get_request_queue",
    "incoming_file",
]
