"""
File handlers: CreateFile and CompressFile.

CreateFile serializes the upstream artifact (or inline data) to disk.
CompressFile archives one file into a single-entry zip container.
"""

import asyncio
import json
import os
import zipfile
from pathlib import Path
from typing import Any

import aiofiles

from .base import BaseTaskHandler, TaskContext
from ..models.configs import FileCreationConfig, ZipCompressionConfig
from ..models.execution import TaskResult
from ..models.job import TaskType


# compression_level -> (zip method, compresslevel)
COMPRESSION_LEVELS = {
    "optimal": (zipfile.ZIP_DEFLATED, 6),
    "fastest": (zipfile.ZIP_DEFLATED, 1),
    "smallest_size": (zipfile.ZIP_DEFLATED, 9),
    "no_compression": (zipfile.ZIP_STORED, None),
}


class CreateFileHandler(BaseTaskHandler):
    """Write the upstream artifact to a file in the declared format."""

    task_type = TaskType.CREATE_FILE.value
    config_model = FileCreationConfig

    async def execute(self, config: FileCreationConfig, context: TaskContext) -> TaskResult:
        data = config.data if config.data is not None else context.last_artifact
        if data is None:
            return TaskResult.failure("No data available to create file", error_code="HANDLER_FAULT")

        try:
            content = self._render(data, config)
        except ValueError as e:
            return TaskResult.failure(
                f"Data is not well-formed {config.format}: {e}",
                error_code="HANDLER_FAULT"
            )

        path = Path(config.output_path)
        if path.exists() and not config.overwrite_existing:
            self.logger.warning("File already exists and overwrite is disabled", extra={
                "file_path": str(path)
            })
            return TaskResult.failure(
                f"File {path} already exists and overwrite is disabled",
                error_code="HANDLER_FAULT"
            )

        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding=config.encoding) as f:
            await f.write(content)

        self.logger.info(f"Successfully created file: {path} ({path.stat().st_size} bytes)", extra={
            "file_path": str(path),
            "format": config.format
        })
        return TaskResult.success(output=str(path))

    def _render(self, data: Any, config: FileCreationConfig) -> str:
        if config.format == "text":
            return data if isinstance(data, str) else str(data)

        # Parse and re-serialize so only well-formed JSON reaches disk
        if isinstance(data, (bytes, bytearray)):
            data = data.decode(config.encoding)
        if isinstance(data, str):
            data = json.loads(data)
        try:
            return json.dumps(data, indent=config.indent, ensure_ascii=False)
        except TypeError as e:
            raise ValueError(str(e))


class CompressFileHandler(BaseTaskHandler):
    """Archive a source file into a single-entry zip file."""

    task_type = TaskType.COMPRESS_FILE.value
    config_model = ZipCompressionConfig

    async def execute(self, config: ZipCompressionConfig, context: TaskContext) -> TaskResult:
        source = Path(config.source_file_path)
        target = Path(config.zip_file_path)

        if not source.is_file():
            self.logger.error(f"Source file not found: {source}")
            return TaskResult.failure(f"Source file not found: {source}", error_code="HANDLER_FAULT")

        self.logger.info(f"Compressing file {source} to {target}", extra={
            "execution_id": context.execution_id
        })

        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists():
            target.unlink()

        method, level = COMPRESSION_LEVELS[config.compression_level]

        def write_archive():
            with zipfile.ZipFile(target, "w", compression=method, compresslevel=level) as archive:
                archive.write(source, arcname=source.name)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, write_archive)

        original_size = source.stat().st_size
        compressed_size = target.stat().st_size
        ratio = (1.0 - compressed_size / original_size) * 100 if original_size else 0.0
        self.logger.info(
            f"Successfully compressed file. Original: {original_size} bytes, "
            f"Compressed: {compressed_size} bytes, Ratio: {ratio:.1f}%"
        )

        if config.delete_source_after_compression:
            os.remove(source)
            self.logger.info(f"Deleted source file: {source}")

        return TaskResult.success(output=str(target))
