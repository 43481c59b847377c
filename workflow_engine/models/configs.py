"""
Configuration models for the built-in task handlers

Each handler validates its task's raw configuration blob into one of these
models before the first attempt. Validation failures are never retried.
"""

import posixpath
from typing import Optional, Dict, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class HandlerConfig(BaseModel):
    """Base class for handler configuration models."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class ApiDataFetchConfig(HandlerConfig):
    """HTTP fetch of the data a pipeline works on."""

    api_url: str = Field(min_length=1)
    method: Literal["GET", "POST"] = "GET"
    body: Optional[Any] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: int = Field(default=30, gt=0)
    auth_token: Optional[str] = None


class FileCreationConfig(HandlerConfig):
    """Serialization of the upstream artifact (or inline data) to a file."""

    output_path: str = Field(min_length=1)
    format: Literal["json", "text"] = "json"
    data: Optional[Any] = None
    indent: Optional[int] = 2
    overwrite_existing: bool = True
    encoding: str = "utf-8"


class ZipCompressionConfig(HandlerConfig):
    """Single-entry zip archive of a source file."""

    source_file_path: str = Field(min_length=1)
    zip_file_path: str = Field(min_length=1)
    compression_level: Literal["optimal", "fastest", "smallest_size", "no_compression"] = "optimal"
    delete_source_after_compression: bool = False


class ApiUploadConfig(HandlerConfig):
    """Multipart HTTP upload of a local file."""

    upload_url: str = Field(min_length=1)
    file_path: str = Field(min_length=1)
    file_field_name: str = Field(default="file", min_length=1)
    form_data: Dict[str, str] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: int = Field(default=300, gt=0)
    auth_token: Optional[str] = None


class SftpUploadConfig(HandlerConfig):
    """SFTP transfer of a local file to a remote directory."""

    host: str = Field(min_length=1)
    port: int = Field(default=22, gt=0, le=65535)
    username: str = Field(min_length=1)
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_passphrase: Optional[str] = None

    local_file_path: str = Field(min_length=1)
    remote_directory_path: str = Field(min_length=1)
    remote_file_name: Optional[str] = None

    overwrite_existing: bool = True
    connection_timeout_seconds: int = Field(default=30, gt=0)
    create_remote_directories: bool = True
    verify_host_key: bool = False
    host_key_fingerprint: Optional[str] = None

    @model_validator(mode="after")
    def _check_credentials(self) -> "SftpUploadConfig":
        if not self.password and not self.private_key_path:
            raise ValueError("either password or private_key_path must be provided for SFTP authentication")
        if self.verify_host_key and not self.host_key_fingerprint:
            raise ValueError("host_key_fingerprint is required when verify_host_key is enabled")
        return self

    @property
    def remote_file_path(self) -> str:
        name = self.remote_file_name or posixpath.basename(self.local_file_path.replace("\\", "/"))
        return f"{self.remote_directory_path.rstrip('/')}/{name}"
