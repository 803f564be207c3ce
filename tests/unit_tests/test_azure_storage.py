import asyncio
import base64
import hashlib
import re

import pytest
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError, ServiceRequestError

from azure_blob_upload.health import HealthStatus, get_dependency_tracker
from azure_blob_upload.storage import (
    AzureBlobStorage,
    ContainerSetupError,
    ReadinessState,
    StorageError,
    StoredFile,
)
from azure_blob_upload.storage.azure import CONTAINER_DEPENDENCY
from tests.conftest import TEST_CONTAINER, make_file
from tests.fixtures.blob_service import TEST_ACCOUNT_URL


def by_original_name(file):
    return f"custom/{file.originalname}"


async def test_store_uses_default_blob_name(engine, blob_service):
    file = make_file("avatar.png", b"\x89PNG", fieldname="avatar", mimetype="image/png")

    stored = await engine.handle_file(None, file)

    assert re.fullmatch(r"avatar-[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\.png", stored.blob)
    assert blob_service.blobs[(TEST_CONTAINER, stored.blob)] == (b"\x89PNG", "image/png")


async def test_store_without_extension(engine):
    stored = await engine.handle_file(None, make_file(".bashrc", fieldname="dotfile"))

    assert re.fullmatch(r"dotfile-[0-9a-f-]{36}", stored.blob)


async def test_store_uses_custom_file_name_exactly(blob_service, request_queue, storage_options):
    engine = AzureBlobStorage(storage_options, blob_service=blob_service, request_queue=request_queue,
                              file_name=by_original_name)
    await engine.ensure_container()

    stored = await engine.handle_file(None, make_file("invoice 1.pdf"))

    assert stored.blob == "custom/invoice 1.pdf"


async def test_stored_file_metadata(engine):
    content = b"%PDF-1.4 test"
    file = make_file("report.pdf", content)

    stored = await engine.handle_file(None, file)

    assert isinstance(stored, StoredFile)
    assert stored.container == TEST_CONTAINER
    assert stored.blob_type == "BlockBlob"
    assert stored.size == len(content)
    assert stored.etag == '"0x8D0"'
    assert stored.metadata == {}
    assert stored.content_md5 == base64.b64encode(hashlib.md5(content).digest()).decode()
    assert stored.content_type == "application/pdf"
    assert stored.url == f"{TEST_ACCOUNT_URL}/{TEST_CONTAINER}/{stored.blob}"


async def test_store_does_not_touch_the_file_descriptor(engine):
    file = make_file()

    await engine.handle_file(None, file)

    assert file.blob_name is None


async def test_container_created_with_requested_security(blob_service, request_queue, storage_options):
    engine = AzureBlobStorage(storage_options, blob_service=blob_service, request_queue=request_queue,
                              container_security="container")

    assert await engine.ensure_container() is ReadinessState.READY
    assert blob_service.containers == {TEST_CONTAINER: "container"}
    assert get_dependency_tracker().get_dependency(CONTAINER_DEPENDENCY).status is HealthStatus.HEALTHY


async def test_write_error_is_forwarded_unchanged(engine, blob_service):
    error = ServiceRequestError("connection reset")
    engine.file_name = lambda file: "broken.pdf"
    blob_service.fail_uploads["broken.pdf"] = error

    with pytest.raises(ServiceRequestError) as exc_info:
        await engine.handle_file(None, make_file())

    assert exc_info.value is error
    assert any("writing" in note for note in exc_info.value.__notes__)
    assert blob_service.calls_named("get_properties") == []


async def test_properties_error_is_forwarded_unchanged(engine, blob_service):
    error = HttpResponseError("properties unavailable")
    engine.file_name = lambda file: "report.pdf"
    blob_service.fail_properties["report.pdf"] = error

    with pytest.raises(HttpResponseError) as exc_info:
        await engine.handle_file(None, make_file())

    assert exc_info.value is error
    assert any("fetching-properties" in note for note in exc_info.value.__notes__)


async def test_transport_error_does_not_poison_the_engine(engine, blob_service):
    engine.file_name = lambda file: file.originalname
    blob_service.fail_uploads["bad.pdf"] = ServiceRequestError("timeout")

    with pytest.raises(ServiceRequestError):
        await engine.handle_file(None, make_file("bad.pdf"))

    stored = await engine.handle_file(None, make_file("good.pdf"))
    assert stored.blob == "good.pdf"
    assert engine.state is ReadinessState.READY


async def test_empty_custom_name_is_rejected_before_writing(engine, blob_service):
    engine.file_name = lambda file: ""

    with pytest.raises(StorageError):
        await engine.handle_file(None, make_file())

    assert blob_service.calls_named("upload") == []


async def test_remove_never_stored_file_is_a_noop(engine, blob_service):
    calls_before = list(blob_service.calls)

    assert await engine.remove_file(None, make_file()) is None
    assert blob_service.calls == calls_before


async def test_remove_deletes_the_recorded_blob_once(engine, blob_service):
    file = make_file()
    stored = await engine.handle_file(None, file)
    file.blob_name = stored.blob

    await engine.remove_file(None, file)

    assert blob_service.calls_named("delete") == [("delete", TEST_CONTAINER, stored.blob)]


async def test_remove_forwards_delete_error(engine, blob_service):
    error = ResourceNotFoundError("gone")
    blob_service.fail_deletes["ghost.pdf"] = error
    file = make_file()
    file.blob_name = "ghost.pdf"

    with pytest.raises(ResourceNotFoundError) as exc_info:
        await engine.remove_file(None, file)

    assert exc_info.value is error


async def test_store_then_remove_leaves_no_blob(engine, blob_service):
    file = make_file()
    stored = await engine.handle_file(None, file)
    file.blob_name = stored.blob

    await engine.remove_file(None, file)

    assert (TEST_CONTAINER, stored.blob) not in blob_service.blobs
    with pytest.raises(ResourceNotFoundError):
        await blob_service.get_blob_properties(TEST_CONTAINER, stored.blob)


async def test_requests_before_readiness_are_replayed_in_order(blob_service, request_queue, storage_options):
    blob_service.gate = asyncio.Event()
    engine = AzureBlobStorage(storage_options, blob_service=blob_service, request_queue=request_queue,
                              file_name=lambda file: file.originalname)
    names = [f"file-{i}.txt" for i in range(5)]

    tasks = [asyncio.create_task(engine.handle_file(None, make_file(name))) for name in names]
    await asyncio.sleep(0)

    assert engine.state is ReadinessState.PENDING
    assert len(request_queue) == len(names)
    assert blob_service.calls_named("upload") == []

    blob_service.gate.set()
    results = await asyncio.gather(*tasks)

    assert [stored.blob for stored in results] == names
    assert [call[2] for call in blob_service.calls_named("upload")] == names
    assert len(request_queue) == 0


async def test_pending_remove_is_replayed_after_readiness(blob_service, request_queue, storage_options):
    blob_service.gate = asyncio.Event()
    blob_service.blobs[(TEST_CONTAINER, "old.pdf")] = (b"old", "application/pdf")
    engine = AzureBlobStorage(storage_options, blob_service=blob_service, request_queue=request_queue)
    file = make_file()
    file.blob_name = "old.pdf"

    task = asyncio.create_task(engine.remove_file(None, file))
    await asyncio.sleep(0)
    assert blob_service.calls_named("delete") == []

    blob_service.gate.set()
    assert await task is None
    assert blob_service.calls_named("delete") == [("delete", TEST_CONTAINER, "old.pdf")]


async def test_setup_failure_fails_queued_and_later_requests(blob_service, request_queue, storage_options):
    cause = HttpResponseError("AuthorizationFailure")
    blob_service.gate = asyncio.Event()
    blob_service.container_error = cause
    engine = AzureBlobStorage(storage_options, blob_service=blob_service, request_queue=request_queue)

    tasks = [asyncio.create_task(engine.handle_file(None, make_file(f"f{i}.pdf"))) for i in range(3)]
    await asyncio.sleep(0)
    blob_service.gate.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert engine.state is ReadinessState.FAILED
    assert all(result is engine.setup_error for result in results)
    assert isinstance(engine.setup_error, ContainerSetupError)
    assert engine.setup_error.__cause__ is cause
    assert str(engine.setup_error) == "Cannot use container. Check if provided options are correct."

    with pytest.raises(ContainerSetupError) as exc_info:
        await engine.handle_file(None, make_file("late.pdf"))
    assert exc_info.value is engine.setup_error

    stored_file = make_file()
    stored_file.blob_name = "anything.pdf"
    with pytest.raises(ContainerSetupError):
        await engine.remove_file(None, stored_file)

    assert blob_service.network_blobs == set()
    assert len(request_queue) == 0
    dependency = get_dependency_tracker().get_dependency(CONTAINER_DEPENDENCY)
    assert dependency.status is HealthStatus.UNHEALTHY


async def test_create_raises_setup_error(blob_service, request_queue, storage_options):
    blob_service.container_error = HttpResponseError("forbidden")

    with pytest.raises(ContainerSetupError):
        await AzureBlobStorage.create(storage_options, blob_service=blob_service, request_queue=request_queue)


async def test_create_returns_ready_engine(blob_service, request_queue, storage_options):
    engine = await AzureBlobStorage.create(storage_options, blob_service=blob_service, request_queue=request_queue)

    assert engine.is_ready
    assert blob_service.calls_named("create_container") == [("create_container", TEST_CONTAINER, None)]


def test_engine_built_outside_event_loop_checks_container_on_first_use(blob_service, request_queue, storage_options):
    engine = AzureBlobStorage(storage_options, blob_service=blob_service, request_queue=request_queue)
    assert blob_service.calls == []

    stored = asyncio.run(engine.handle_file(None, make_file()))

    assert engine.state is ReadinessState.READY
    assert stored.container == TEST_CONTAINER
    assert blob_service.calls_named("create_container") == [("create_container", TEST_CONTAINER, None)]


async def test_engines_share_the_process_queue(blob_service, storage_options):
    first = AzureBlobStorage(storage_options, blob_service=blob_service)
    second = AzureBlobStorage(storage_options, blob_service=blob_service)

    assert first._queue is second._queue

    await first.ensure_container()
    await second.ensure_container()


async def test_close_releases_the_client(engine, blob_service):
    await engine.close()

    assert blob_service.closed


def traceback_depth(error: BaseException) -> int:
    depth, tb = 0, error.__traceback__
    while tb is not None:
        depth, tb = depth + 1, tb.tb_next
    return depth


async def test_store_cancelled_while_pending_never_reaches_the_container(blob_service, request_queue, storage_options):
    blob_service.gate = asyncio.Event()
    engine = AzureBlobStorage(storage_options, blob_service=blob_service, request_queue=request_queue,
                              file_name=lambda file: file.originalname)

    abandoned = asyncio.create_task(engine.handle_file(None, make_file("abandoned.pdf")))
    kept = asyncio.create_task(engine.handle_file(None, make_file("kept.pdf")))
    await asyncio.sleep(0)
    abandoned.cancel()
    with pytest.raises(asyncio.CancelledError):
        await abandoned

    blob_service.gate.set()
    stored = await kept

    assert stored.blob == "kept.pdf"
    assert [call[2] for call in blob_service.calls_named("upload")] == ["kept.pdf"]
    assert list(blob_service.blobs) == [(TEST_CONTAINER, "kept.pdf")]


async def test_failed_engine_does_not_accumulate_traceback(blob_service, request_queue, storage_options):
    blob_service.container_error = HttpResponseError("AuthorizationFailure")
    engine = AzureBlobStorage(storage_options, blob_service=blob_service, request_queue=request_queue)
    await engine.ensure_container()

    depths = []
    for _ in range(5):
        with pytest.raises(ContainerSetupError) as exc_info:
            await engine.handle_file(None, make_file())
        assert exc_info.value is engine.setup_error
        depths.append(traceback_depth(exc_info.value))

    assert len(set(depths)) == 1


async def test_queued_callers_get_a_fresh_setup_traceback(blob_service, request_queue, storage_options):
    blob_service.gate = asyncio.Event()
    blob_service.container_error = HttpResponseError("AuthorizationFailure")
    engine = AzureBlobStorage(storage_options, blob_service=blob_service, request_queue=request_queue)

    tasks = [asyncio.create_task(engine.handle_file(None, make_file(f"f{i}.pdf"))) for i in range(4)]
    await asyncio.sleep(0)
    blob_service.gate.set()

    depths = []
    for task in tasks:
        with pytest.raises(ContainerSetupError) as exc_info:
            await task
        assert exc_info.value is engine.setup_error
        depths.append(traceback_depth(exc_info.value))

    assert len(set(depths)) == 1


async def test_cancelled_container_check_fails_queued_requests(blob_service, request_queue, storage_options):
    blob_service.gate = asyncio.Event()
    engine = AzureBlobStorage(storage_options, blob_service=blob_service, request_queue=request_queue)

    queued = asyncio.create_task(engine.handle_file(None, make_file()))
    await asyncio.sleep(0)
    engine._container_task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await engine._container_task

    with pytest.raises(ContainerSetupError):
        await queued
    assert engine.state is ReadinessState.FAILED
    assert isinstance(engine.setup_error.__cause__, asyncio.CancelledError)
    assert len(request_queue) == 0
    assert blob_service.calls_named("upload") == []

    with pytest.raises(ContainerSetupError):
        await engine.handle_file(None, make_file("late.pdf"))
