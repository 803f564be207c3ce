"""Construction options of the Azure blob storage engine."""

import logging
from enum import StrEnum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .base import IncomingFile
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ContainerSecurity(StrEnum):
    BLOB = "blob"  # anonymous read for blobs only
    CONTAINER = "container"  # anonymous read and list for the whole container


class StorageOptions(BaseModel):
    """Options recognized by ``AzureBlobStorage``."""
    model_config = ConfigDict(frozen=True, extra="ignore", arbitrary_types_allowed=True)

    azure_storage_connection_string: Optional[str] = None
    azure_storage_account: Optional[str] = None
    azure_storage_access_key: Optional[str] = None
    container_name: Optional[str] = None
    container_security: ContainerSecurity = ContainerSecurity.BLOB
    file_name: Optional[Callable[[IncomingFile], str]] = None

    @field_validator("container_security", mode="before")
    @classmethod
    def validate_container_security(cls, v) -> ContainerSecurity:
        if v is None or v == "":
            return ContainerSecurity.BLOB
        if isinstance(v, ContainerSecurity):
            return v
        if isinstance(v, str):
            for level in ContainerSecurity:
                if level.value == v.lower():
                    return level
        valid_levels = [level.value for level in ContainerSecurity]
        raise ValueError(f"container_security must be one of {valid_levels}, got '{v}'")

    @property
    def uses_connection_string(self) -> bool:
        return bool(self.azure_storage_connection_string)

    def missing_parameters(self) -> List[str]:
        """Every required option that is absent, in reporting order."""
        missing = []
        if not self.uses_connection_string:
            if not self.azure_storage_access_key:
                missing.append("azure_storage_access_key")
            if not self.azure_storage_account:
                missing.append("azure_storage_account")
        if not self.container_name:
            missing.append("container_name")
        return missing

    @classmethod
    def parse(cls, opts: Any = None, **kwargs) -> "StorageOptions":
        """
        Build and check options from a mapping, an existing instance
        and/or keyword arguments.

        Raises:
            ConfigurationError: listing every missing or invalid option at once.
        """
        if isinstance(opts, StorageOptions):
            values = opts.model_dump()
        else:
            values = dict(opts or {})
        values.update(kwargs)

        options = None
        invalid: List[str] = []
        cause = None
        try:
            options = cls(**values)
        except ValidationError as e:
            invalid = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            cause = e

        # Checked on the raw values so a bad value never hides a missing one
        missing = cls.model_construct(**values).missing_parameters()
        if not missing and not invalid:
            return options

        parts = []
        if missing:
            plural = "s" if len(missing) > 1 else ""
            parts.append(
                f"Missing required parameter{plural} from the options of "
                f"AzureBlobStorage: {', '.join(missing)}"
            )
        if invalid:
            plural = "s" if len(invalid) > 1 else ""
            parts.append(f"Invalid parameter{plural}: {', '.join(invalid)}")
        message = ". ".join(parts)
        logger.error(message)
        raise ConfigurationError(message, missing=missing + invalid) from cause
