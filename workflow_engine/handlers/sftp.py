"""
UploadSftp handler.

Transfers a local file to a remote directory over SFTP. The blocking
paramiko session runs in the default executor. When the awaiting task is
cancelled (deadline or external cancellation) the worker thread is told to
abort, its session is closed under it, and the handler only returns once the
thread has finished, so a retry never overlaps an abandoned transfer.
"""

import asyncio
import posixpath
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

import paramiko

from .base import BaseTaskHandler, TaskContext
from ..models.configs import SftpUploadConfig
from ..models.execution import TaskResult
from ..models.job import TaskType
from ..utils.logger import get_logger


class TransferAborted(Exception):
    """Raised inside the worker thread once the upload has been abandoned."""


class SftpSession:
    """Connected SSH transport plus SFTP channel."""

    def __init__(self, config: SftpUploadConfig):
        self.logger = get_logger(__name__)
        self.ssh = paramiko.SSHClient()
        self.ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs = {
            "hostname": config.host,
            "port": config.port,
            "username": config.username,
            "timeout": config.connection_timeout_seconds,
            "allow_agent": False,
            "look_for_keys": False
        }
        if config.private_key_path:
            connect_kwargs["key_filename"] = config.private_key_path
            connect_kwargs["passphrase"] = config.private_key_passphrase
        else:
            connect_kwargs["password"] = config.password

        self.ssh.connect(**connect_kwargs)

        if config.verify_host_key:
            self._verify_host_key(config.host_key_fingerprint)

        self.sftp = self.ssh.open_sftp()

    def _verify_host_key(self, expected: str):
        key = self.ssh.get_transport().get_remote_server_key()
        received = key.get_fingerprint().hex().lower()
        wanted = expected.replace(":", "").replace("-", "").lower()
        if received != wanted:
            self.close()
            raise paramiko.SSHException(
                f"Host key verification failed. Expected: {wanted}, Received: {received}"
            )

    def exists(self, path: str) -> bool:
        try:
            self.sftp.stat(path)
            return True
        except IOError:
            return False

    def mkdir(self, path: str):
        self.sftp.mkdir(path)

    def put(self, local_path: str, remote_path: str, callback: Optional[Callable[[int, int], None]] = None):
        self.sftp.put(local_path, remote_path, callback=callback)

    def size(self, path: str) -> int:
        return self.sftp.stat(path).st_size

    def close(self):
        if getattr(self, "sftp", None) is not None:
            self.sftp.close()
        self.ssh.close()


class SftpUploadHandler(BaseTaskHandler):
    """Upload a local file to an SFTP server."""

    task_type = TaskType.UPLOAD_SFTP.value
    config_model = SftpUploadConfig

    def __init__(self, client_factory: Optional[Callable[[SftpUploadConfig], SftpSession]] = None):
        """
        Initialize the handler.

        Args:
            client_factory: Builds a connected session from a config; defaults to SftpSession
        """
        super().__init__()
        self.client_factory = client_factory or SftpSession

    async def execute(self, config: SftpUploadConfig, context: TaskContext) -> TaskResult:
        local = Path(config.local_file_path)
        if not local.is_file():
            self.logger.error(f"Local file not found: {local}")
            return TaskResult.failure(f"Local file not found: {local}", error_code="HANDLER_FAULT")

        self.logger.info(
            f"Starting SFTP upload of {local} to {config.host}:{config.port}{config.remote_directory_path}",
            extra={"execution_id": context.execution_id}
        )

        abort = threading.Event()
        transfer: Dict[str, SftpSession] = {}
        loop = asyncio.get_running_loop()
        worker = loop.run_in_executor(None, self._upload, config, local, abort, transfer)

        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            abort.set()
            session = transfer.get("session")
            if session is not None:
                # Unblocks a put stuck waiting on the network
                await loop.run_in_executor(None, session.close)
            await asyncio.wait({worker})
            self.logger.warning(f"SFTP upload of {local} aborted", extra={
                "execution_id": context.execution_id,
                "host": config.host
            })
            raise

    def _upload(self, config: SftpUploadConfig, local: Path, abort: threading.Event,
                transfer: Dict[str, SftpSession]) -> TaskResult:
        if abort.is_set():
            return TaskResult.failure("SFTP upload aborted before connecting", error_code="CANCELLED")

        try:
            session = self.client_factory(config)
        except (paramiko.SSHException, OSError) as e:
            return TaskResult.failure(
                f"Failed to connect to SFTP server {config.host}:{config.port}: {e}",
                error_code="HANDLER_FAULT"
            )
        transfer["session"] = session

        def check_abort(sent: int, total: int):
            if abort.is_set():
                raise TransferAborted(f"aborted after {sent} of {total} bytes")

        try:
            remote_path = config.remote_file_path

            if config.create_remote_directories:
                self._create_remote_directories(session, config.remote_directory_path)

            if not config.overwrite_existing and session.exists(remote_path):
                return TaskResult.failure(
                    f"Remote file already exists and overwrite is disabled: {remote_path}",
                    error_code="HANDLER_FAULT"
                )

            check_abort(0, 0)
            local_size = local.stat().st_size
            self.logger.info(f"Uploading {local_size} bytes to {remote_path}")
            session.put(str(local), remote_path, callback=check_abort)
            check_abort(local_size, local_size)

            if not session.exists(remote_path):
                return TaskResult.failure(
                    f"File verification failed - remote file not found after upload: {remote_path}",
                    error_code="HANDLER_FAULT"
                )

            remote_size = session.size(remote_path)
            if remote_size != local_size:
                return TaskResult.failure(
                    f"File size mismatch after upload. Local: {local_size}, Remote: {remote_size}",
                    error_code="HANDLER_FAULT"
                )

            self.logger.info(f"Successfully uploaded file to SFTP server. Size verified: {remote_size} bytes")
            return TaskResult.success(output=remote_path)

        except TransferAborted as e:
            return TaskResult.failure(f"SFTP upload {e}", error_code="CANCELLED")
        except (paramiko.SSHException, OSError, EOFError) as e:
            if abort.is_set():
                return TaskResult.failure(f"SFTP upload aborted: {e}", error_code="CANCELLED")
            return TaskResult.failure(
                f"SFTP transfer to {config.host}:{config.port} failed: {e}",
                error_code="HANDLER_FAULT"
            )
        finally:
            session.close()

    def _create_remote_directories(self, session, remote_directory: str):
        if session.exists(remote_directory):
            return

        current = "/" if remote_directory.startswith("/") else ""
        for part in [p for p in remote_directory.split("/") if p]:
            current = posixpath.join(current, part) if current else part
            if not session.exists(current):
                session.mkdir(current)
                self.logger.debug(f"Created remote directory: {current}")
