# azure_blob_upload/storage/azure.py
import asyncio
import base64
import logging
import os
import uuid
from enum import Enum
from typing import Any, Optional, Set

from azure_blob_upload.health import set_dependency_healthy, set_dependency_unhealthy

from .base import BaseStorageEngine, IncomingFile, StoredFile
from .blob_service import BlobService
from .exceptions import ContainerSetupError, StorageError
from .options import StorageOptions
from .readiness import Operation, PendingRequest, ReadinessState, RequestQueue, get_request_queue

logger = logging.getLogger(__name__)

CONTAINER_DEPENDENCY = "azure_blob_container"


class StoreStage(Enum):
    VALIDATING = "validating"
    WRITING = "writing"
    FETCHING_PROPERTIES = "fetching-properties"
    DONE = "done"


def default_blob_name(file: IncomingFile) -> str:
    """``<fieldname>-<uuid4><extension of the original name>``"""
    extension = os.path.splitext(file.originalname or "")[1]
    return f"{file.fieldname}-{uuid.uuid4()}{extension}"


class AzureBlobStorage(BaseStorageEngine):
    """
    Storage engine that streams uploaded files into an Azure Blob Storage
    container.

    The container is created (or confirmed) in the background as soon as the
    engine is built inside a running event loop, or on first use otherwise.
    Calls arriving before that finishes are parked in the shared
    ``RequestQueue`` and replayed in arrival order once the container is
    ready, or failed with ``ContainerSetupError`` if it never becomes usable.
    """

    def __init__(
        self,
        opts: Any = None,
        *,
        blob_service: Optional[BlobService] = None,
        request_queue: Optional[RequestQueue] = None,
        **kwargs,
    ):
        # Raises ConfigurationError before anything touches the network
        self.options = StorageOptions.parse(opts, **kwargs)
        self.container_name: str = self.options.container_name
        self.container_security = self.options.container_security
        self.file_name = self.options.file_name

        self.state = ReadinessState.PENDING
        self.setup_error: Optional[ContainerSetupError] = None
        self._queue = request_queue if request_queue is not None else get_request_queue()
        self._container_task: Optional[asyncio.Task] = None
        self._replays: Set[asyncio.Task] = set()

        if blob_service is None:
            if self.options.uses_connection_string:
                blob_service = BlobService.from_connection_string(
                    self.options.azure_storage_connection_string
                )
            else:
                blob_service = BlobService.from_account_key(
                    self.options.azure_storage_account,
                    self.options.azure_storage_access_key,
                )
        self.blob_service = blob_service

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, container {self.container_name} is checked on first use")
        else:
            self._start_container_check()

    @classmethod
    async def create(cls, opts: Any = None, **kwargs) -> "AzureBlobStorage":
        """Build an engine and wait until its container is usable."""
        engine = cls(opts, **kwargs)
        state = await engine.ensure_container()
        if state is ReadinessState.FAILED:
            raise engine._setup_failure()
        return engine

    @property
    def is_ready(self) -> bool:
        return self.state is ReadinessState.READY

    # ---------- readiness ---------- #
    def _start_container_check(self) -> asyncio.Task:
        if self._container_task is None:
            self._container_task = asyncio.get_running_loop().create_task(
                self._ensure_container()
            )
        return self._container_task

    async def ensure_container(self) -> ReadinessState:
        """Wait for the container check (starting it if needed) and return the outcome."""
        if self.state is ReadinessState.PENDING:
            await asyncio.shield(self._start_container_check())
        return self.state

    async def _ensure_container(self) -> None:
        try:
            await self.blob_service.create_container_if_not_exists(
                self.container_name,
                public_access=self.container_security.value,
            )
        except asyncio.CancelledError as e:
            self._fail(ContainerSetupError("Container check was cancelled before it completed."), e)
            raise
        except Exception as e:
            self._fail(ContainerSetupError(), e)
            return

        self.state = ReadinessState.READY
        logger.info(f"Container {self.container_name} is ready")
        set_dependency_healthy(CONTAINER_DEPENDENCY, {"container": self.container_name})
        for task in self._queue.replay_all(self._replay, owner=self):
            self._replays.add(task)
            task.add_done_callback(self._replays.discard)

    def _fail(self, error: ContainerSetupError, cause: BaseException) -> None:
        error.__cause__ = cause
        self.setup_error = error
        self.state = ReadinessState.FAILED
        logger.error(f"Cannot use container {self.container_name}: {cause!r}")
        set_dependency_unhealthy(CONTAINER_DEPENDENCY, str(error), {"container": self.container_name})
        self._queue.fail_all(error, owner=self)

    def _setup_failure(self) -> ContainerSetupError:
        # Same instance for every caller, with the traceback of the previous raise dropped
        return self.setup_error.with_traceback(None)

    async def _replay(self, entry: PendingRequest) -> Any:
        if entry.operation is Operation.STORE:
            return await self.handle_file(entry.request, entry.file)
        return await self.remove_file(entry.request, entry.file)

    async def _wait_until_ready(self, operation: Operation, request: Any, file: IncomingFile) -> Any:
        self._start_container_check()
        entry = self._queue.append(self, operation, request, file)
        try:
            return await entry.future
        except ContainerSetupError as e:
            if e is not self.setup_error:
                raise
        raise self._setup_failure()

    # ---------- API ---------- #
    async def handle_file(self, request: Any, file: IncomingFile) -> StoredFile:
        """Upload *file* to the container and return the stored blob's metadata."""
        if self.state is ReadinessState.FAILED:
            raise self._setup_failure()
        if self.state is ReadinessState.PENDING:
            return await self._wait_until_ready(Operation.STORE, request, file)
        return await self._store(file)

    async def remove_file(self, request: Any, file: IncomingFile) -> None:
        """Delete the blob recorded on *file*; a file that was never stored is a no-op."""
        if self.state is ReadinessState.FAILED:
            raise self._setup_failure()
        if not file.blob_name:
            return None
        if self.state is ReadinessState.PENDING:
            return await self._wait_until_ready(Operation.REMOVE, request, file)
        logger.info(f"Deleting blob {file.blob_name} from {self.container_name}")
        return await self.blob_service.delete_blob(self.container_name, file.blob_name)

    # ---------- helpers ---------- #
    def _blob_name(self, file: IncomingFile) -> str:
        if not callable(self.file_name):
            return default_blob_name(file)
        name = self.file_name(file)
        if not isinstance(name, str) or not name:
            raise StorageError(f"file_name returned an unusable blob name for {file.originalname}: {name!r}")
        return name

    async def _store(self, file: IncomingFile) -> StoredFile:
        stage = StoreStage.VALIDATING
        blob = None
        try:
            blob = self._blob_name(file)

            stage = StoreStage.WRITING
            logger.debug(f"Uploading {file.originalname} to {self.container_name}/{blob}")
            await self.blob_service.upload_stream(
                self.container_name,
                blob,
                file.stream,
                content_type=file.mimetype,
            )

            stage = StoreStage.FETCHING_PROPERTIES
            properties = await self.blob_service.get_blob_properties(self.container_name, blob)
        except Exception as e:
            e.add_note(f"Storing {file.originalname} as {blob} failed while {stage.value}")
            logger.error(f"Storing {file.originalname} failed while {stage.value}: {e}")
            raise

        logger.info(f"Stored {file.originalname} as {self.container_name}/{blob}")
        return self._stored_file(blob, properties)

    def _stored_file(self, blob: str, properties: Any) -> StoredFile:
        content_settings = getattr(properties, "content_settings", None)
        content_md5 = content_settings.content_md5 if content_settings else None
        if isinstance(content_md5, (bytes, bytearray)):
            content_md5 = base64.b64encode(content_md5).decode("ascii")
        blob_type = getattr(properties, "blob_type", None)

        return StoredFile(
            container=properties.container or self.container_name,
            blob=blob,
            blob_type=getattr(blob_type, "value", blob_type),
            size=properties.size,
            etag=properties.etag,
            metadata=properties.metadata or {},
            content_md5=content_md5,
            content_type=content_settings.content_type if content_settings else None,
            url=self.blob_service.get_url(self.container_name, blob),
        )

    async def close(self) -> None:
        """Release the underlying client."""
        await self.blob_service.close()
