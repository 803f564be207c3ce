from functools import lru_cache

from azure_blob_upload.configs.config import get_config
from azure_blob_upload.storage import AzureBlobStorage, UploadPipeline


@lru_cache(maxsize=1)
def get_engine() -> AzureBlobStorage:
    return AzureBlobStorage(get_config().storage_options())


def get_pipeline() -> UploadPipeline:
    return UploadPipeline(get_engine(), max_files=get_config().max_files_per_upload)
