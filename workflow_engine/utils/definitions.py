"""
Job definition files.

Jobs and job groups can be authored as YAML or JSON documents. A document
with a top-level ``jobs`` list is a job group; otherwise it is a single job.
Task configuration may be given inline as a mapping under ``configuration``.
"""

import json
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from ..core.exceptions import JobDefinitionError
from ..models.job import Job, JobGroup


def _read_document(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except OSError as e:
        raise JobDefinitionError(f"cannot read definition file {path}: {e}")
    except (ValueError, yaml.YAMLError) as e:
        raise JobDefinitionError(f"definition file {path} is malformed: {e}")

    if not isinstance(data, dict):
        raise JobDefinitionError(f"definition file {path} must contain a mapping")
    return data


def parse_job(data: Dict[str, Any]) -> Job:
    try:
        return Job.from_dict(data)
    except JobDefinitionError:
        raise
    except (TypeError, ValueError) as e:
        raise JobDefinitionError(f"invalid job: {e}", data.get("job_id"))


def parse_job_group(data: Dict[str, Any]) -> JobGroup:
    try:
        return JobGroup.from_dict(data)
    except JobDefinitionError:
        raise
    except (TypeError, ValueError) as e:
        raise JobDefinitionError(f"invalid job group: {e}")


def load_job_file(path: Union[str, Path]) -> Job:
    """Load a single job definition."""
    return parse_job(_read_document(path))


def load_job_group_file(path: Union[str, Path]) -> JobGroup:
    """Load a job group definition."""
    return parse_job_group(_read_document(path))


def load_definition(path: Union[str, Path]) -> Union[Job, JobGroup]:
    """Load either a job or a job group, depending on the document's shape."""
    data = _read_document(path)
    if "jobs" in data:
        return parse_job_group(data)
    return parse_job(data)
