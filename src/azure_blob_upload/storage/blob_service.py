# azure_blob_upload/storage/blob_service.py
import logging
from typing import Any, Optional

from azure.core.exceptions import ResourceExistsError
from azure.storage.blob import BlobProperties, BlobType, ContentSettings
from azure.storage.blob.aio import BlobServiceClient

from .base import FileStream

logger = logging.getLogger(__name__)


class BlobService:
    """
    The handful of Azure Blob Storage calls the storage engine relies on.

    Wraps the async ``BlobServiceClient`` so the engine only ever talks in
    terms of (container, blob) pairs. Errors from the SDK
    (``azure.core.exceptions.AzureError``) are left to propagate.
    """

    def __init__(self, client: BlobServiceClient):
        self.client = client

    @classmethod
    def from_connection_string(cls, connection_string: str) -> "BlobService":
        return cls(BlobServiceClient.from_connection_string(connection_string))

    @classmethod
    def from_account_key(cls, account_name: str, account_key: str) -> "BlobService":
        account_url = f"https://{account_name}.blob.core.windows.net"
        return cls(
            BlobServiceClient(
                account_url=account_url,
                credential={"account_name": account_name, "account_key": account_key},
            )
        )

    # ---------- API ---------- #
    async def create_container_if_not_exists(self, container: str, public_access: Optional[str] = None) -> bool:
        """Create *container* unless it exists. Returns True when it was created."""
        container_client = self.client.get_container_client(container)
        try:
            await container_client.create_container(public_access=public_access)
        except ResourceExistsError:
            logger.debug(f"Container {container} already exists")
            return False
        logger.info(f"Created container {container} (public access: {public_access})")
        return True

    async def upload_stream(self, container: str, blob: str, stream: FileStream, content_type: Optional[str] = None) -> Any:
        """Write *stream* to a block blob, replacing any previous content."""
        blob_client = self.client.get_blob_client(container=container, blob=blob)
        return await blob_client.upload_blob(
            stream,
            blob_type=BlobType.BLOCKBLOB,
            content_settings=ContentSettings(content_type=content_type),
            overwrite=True,
        )

    async def get_blob_properties(self, container: str, blob: str) -> BlobProperties:
        blob_client = self.client.get_blob_client(container=container, blob=blob)
        return await blob_client.get_blob_properties()

    def get_url(self, container: str, blob: str) -> str:
        return self.client.get_blob_client(container=container, blob=blob).url

    async def delete_blob(self, container: str, blob: str) -> None:
        blob_client = self.client.get_blob_client(container=container, blob=blob)
        await blob_client.delete_blob()

    async def close(self) -> None:
        await self.client.close()
