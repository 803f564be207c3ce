import logging
from typing import Annotated

from azure.core.exceptions import AzureError
from fastapi import Depends, File, HTTPException, Request, UploadFile
from fastapi.routing import APIRouter

from azure_blob_upload.deps import get_pipeline
from azure_blob_upload.storage import (
    ContainerSetupError,
    UploadPipeline,
    UploadValidationError,
    incoming_file,
)

logger = logging.getLogger("azure_blob_upload.files")
router = APIRouter(
    prefix="/files",
    tags=["files"],
    responses={404: {"description": "Not found"}},
)


@router.post("/upload")
async def upload_files(
    request: Request,
    files: Annotated[list[UploadFile], File(description="The files to upload")],
    pipeline: UploadPipeline = Depends(get_pipeline),
):
    """
    Stream every uploaded file into the Azure container.

    Either all files are stored, or none are: files stored before a failure
    are deleted again before the error is returned.
    """
    incoming = [incoming_file(upload, fieldname="files") for upload in files]
    try:
        stored = await pipeline.process(request, incoming)
    except UploadValidationError as e:
        logger.warning(f"Upload rejected: {e}")
        raise HTTPException(status_code=400, detail=f"File validation failed: {e}")
    except ContainerSetupError as e:
        logger.error(f"Upload failed, storage unavailable: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except AzureError as e:
        logger.error(f"Upload failed, Azure Blob Storage error: {e}")
        raise HTTPException(status_code=502, detail=f"File upload failed: {e}")
    except Exception as e:
        logger.error(f"Error uploading files: {e}")
        raise HTTPException(status_code=500, detail=f"File upload failed: {e}")

    logger.info(f"Uploaded {len(stored)} file(s)")
    return {
        "files": [file.model_dump() for file in stored],
        "total_uploaded": len(stored),
        "message": "Files uploaded successfully",
    }
