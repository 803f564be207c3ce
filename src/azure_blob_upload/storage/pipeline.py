"""Drives a storage engine over every file of an upload request."""

import asyncio
import logging
from typing import Any, List, Optional

from fastapi import UploadFile

from .base import BaseStorageEngine, IncomingFile, StoredFile
from .exceptions import ContainerSetupError, UploadValidationError

logger = logging.getLogger(__name__)


def incoming_file(upload: UploadFile, fieldname: str = "files") -> IncomingFile:
    """Describe a FastAPI ``UploadFile`` for the storage engine."""
    return IncomingFile(
        fieldname=fieldname,
        originalname=upload.filename or "",
        mimetype=upload.content_type or "application/octet-stream",
        stream=upload.file,
    )


class UploadPipeline:
    """
    Stores all files of one request through *engine*.

    Either every file ends up stored, or the files that did get stored are
    removed again and the first failure is raised. Errors hit while removing
    are attached to that failure as ``storage_errors``, except on the shared
    ``ContainerSetupError``.
    """

    def __init__(self, engine: BaseStorageEngine, max_files: Optional[int] = None):
        self.engine = engine
        self.max_files = max_files

    def validate(self, files: List[IncomingFile]) -> None:
        if not files:
            raise UploadValidationError("At least one file is required")
        if self.max_files is not None and len(files) > self.max_files:
            raise UploadValidationError(
                f"Too many files. Maximum {self.max_files} files per upload, got {len(files)}"
            )
        for file in files:
            if not file.originalname:
                raise UploadValidationError(f"Filename is required for field '{file.fieldname}'")

    async def process(self, request: Any, files: List[IncomingFile]) -> List[StoredFile]:
        self.validate(files)

        results = await asyncio.gather(
            *(self.engine.handle_file(request, file) for file in files),
            return_exceptions=True,
        )

        stored: List[StoredFile] = []
        errors: List[BaseException] = []
        for file, result in zip(files, results):
            if isinstance(result, BaseException):
                errors.append(result)
            else:
                file.blob_name = result.blob
                stored.append(result)

        if errors:
            error = errors[0]
            logger.warning(f"Upload failed after storing {len(stored)} of {len(files)} file(s): {error}")
            failures = await self.rollback(request, files)
            # The engine hands the same setup error to every request, leave it untouched
            if not isinstance(error, ContainerSetupError):
                error.storage_errors = failures
            raise error

        logger.info(f"Stored {len(stored)} file(s)")
        return stored

    async def rollback(self, request: Any, files: List[IncomingFile]) -> List[Exception]:
        """Remove every stored file in *files*; returns the removal failures."""
        failures: List[Exception] = []
        for file in files:
            if not file.blob_name:
                continue
            try:
                await self.engine.remove_file(request, file)
            except Exception as e:
                logger.error(f"Could not remove {file.blob_name} during rollback: {e}")
                failures.append(e)
            else:
                logger.info(f"Rolled back {file.blob_name}")
                file.blob_name = None
        return failures
