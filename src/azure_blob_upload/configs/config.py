import functools
import logging
import sys
from enum import StrEnum

from dotenv import load_dotenv
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings

from azure_blob_upload.storage.options import ContainerSecurity, StorageOptions

load_dotenv(
    override=True,  # Override existing environment variables
)


class LogLevel(StrEnum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    TRACE = "trace"


class Config(BaseSettings):
    # Azure Storage configuration
    azure_storage_connection_string: str = ""  # Takes precedence over account/key
    azure_storage_account: str = ""  # Azure Storage Account name
    azure_storage_access_key: str = ""  # Azure Storage Account key
    azure_container_name: str = "uploads"  # Azure Blob container name
    azure_container_security: ContainerSecurity = ContainerSecurity.BLOB  # "blob" or "container"

    # Upload configuration
    max_files_per_upload: int = 10  # Maximum files per upload request

    # FastAPI configuration
    fastapi_host: str = "localhost"
    fastapi_port: int = 8000
    log_level: LogLevel = LogLevel.INFO

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v) -> LogLevel:
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            v_lower = v.lower()
            for level in LogLevel:
                if level.value == v_lower:
                    return level
            valid_levels = [level.value for level in LogLevel]
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        raise ValueError(f"log_level must be a string or LogLevel enum, got {type(v)}")

    @field_validator("azure_container_security", mode="before")
    @classmethod
    def validate_container_security(cls, v) -> ContainerSecurity:
        if isinstance(v, str):
            return ContainerSecurity(v.lower() or ContainerSecurity.BLOB.value)
        return v

    def storage_options(self) -> StorageOptions:
        """Options for ``AzureBlobStorage``; raises ConfigurationError if incomplete."""
        return StorageOptions.parse(
            azure_storage_connection_string=self.azure_storage_connection_string or None,
            azure_storage_account=self.azure_storage_account or None,
            azure_storage_access_key=self.azure_storage_access_key or None,
            container_name=self.azure_container_name or None,
            container_security=self.azure_container_security,
        )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


def configure_logging(level: LogLevel) -> None:
    # "trace" only exists in uvicorn, the stdlib gets the closest level
    name = "DEBUG" if level is LogLevel.TRACE else level.value.upper()
    logging.basicConfig(
        level=getattr(logging, name),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@functools.lru_cache(maxsize=1)
def get_config() -> Config:
    try:
        return Config()
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error while loading configuration: {e}", file=sys.stderr)
        sys.exit(1)
