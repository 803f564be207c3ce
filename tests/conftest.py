import io

import pytest

from azure_blob_upload.health import get_dependency_tracker
from azure_blob_upload.storage import AzureBlobStorage, IncomingFile, RequestQueue, get_request_queue
from tests.fixtures.blob_service import FakeBlobService

TEST_CONTAINER = "uploads"
TEST_CONNECTION_STRING = (
    "DefaultEndpointsProtocol=https;AccountName=devstoreaccount;"
    "AccountKey=ZmFrZWtleQ==;EndpointSuffix=core.windows.net"
)


def make_file(originalname: str = "report.pdf", content: bytes = b"%PDF-1.4 test", fieldname: str = "document",
              mimetype: str = "application/pdf") -> IncomingFile:
    return IncomingFile(
        fieldname=fieldname,
        originalname=originalname,
        mimetype=mimetype,
        stream=io.BytesIO(content),
    )


@pytest.fixture(autouse=True)
def clean_state():
    get_dependency_tracker().reset()
    get_request_queue.cache_clear()
    yield
    get_dependency_tracker().reset()
    get_request_queue.cache_clear()


@pytest.fixture
def blob_service() -> FakeBlobService:
    return FakeBlobService()


@pytest.fixture
def request_queue() -> RequestQueue:
    return RequestQueue()


@pytest.fixture
def storage_options() -> dict:
    return {
        "azure_storage_connection_string": TEST_CONNECTION_STRING,
        "container_name": TEST_CONTAINER,
    }


@pytest.fixture
async def engine(blob_service, request_queue, storage_options):
    """An engine whose container has already been confirmed."""
    engine = AzureBlobStorage(storage_options, blob_service=blob_service, request_queue=request_queue)
    await engine.ensure_container()
    return engine
