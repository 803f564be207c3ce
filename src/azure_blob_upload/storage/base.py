# azure_blob_upload/storage/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterable, BinaryIO, Dict, Optional, Union

from pydantic import BaseModel

FileStream = Union[bytes, BinaryIO, AsyncIterable[bytes]]


@dataclass
class IncomingFile:
    """
    One file of a multipart upload, as handed over by the upload pipeline.

    *blob_name* is owned by the pipeline: it is filled in from the
    ``StoredFile`` once the engine has stored the file, and read back by
    ``remove_file`` when the upload has to be rolled back.
    """
    fieldname: str
    originalname: str
    mimetype: str
    stream: FileStream
    blob_name: Optional[str] = None


class StoredFile(BaseModel):
    """Metadata reported back to the pipeline for a stored blob."""
    container: str
    blob: str
    blob_type: Optional[str] = None
    size: Optional[int] = None
    etag: Optional[str] = None
    metadata: Dict[str, str] = {}
    content_md5: Optional[str] = None
    content_type: Optional[str] = None
    url: str


class BaseStorageEngine(ABC):
    """
    Contract the upload pipeline expects from a storage engine.

    Both hooks are coroutines. A failure is raised from the awaited call,
    success returns the hook's result.
    """

    @abstractmethod
    async def handle_file(self, request: Any, file: IncomingFile) -> StoredFile:
        """Persist *file* and describe where it ended up."""
        ...

    @abstractmethod
    async def remove_file(self, request: Any, file: IncomingFile) -> None:
        """Undo a previous ``handle_file`` for *file*."""
        ...
