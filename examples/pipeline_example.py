"""
API -> File -> Compress -> Upload pipeline example

Builds the built-in four-stage pipeline from a request, layering custom
headers, form fields and a timeout over the default stage configurations.
Point --api-url and --upload-url at real endpoints to run it end to end.
"""

import asyncio
import sys

from workflow_engine import JobOrchestrator, setup_logger
from workflow_engine.services.pipeline_builder import (
    PipelineRequest,
    build_api_to_upload_job,
    configurations_for_request
)


async def run_pipeline(api_url: str, upload_url: str, output_directory: str):
    request = PipelineRequest(
        workflow_name="daily-export",
        api_url=api_url,
        upload_url=upload_url,
        output_directory=output_directory,
        custom_headers={"X-Request-Source": "pipeline-example"},
        form_data={"dataset": "daily"},
        timeout_seconds=60
    )

    configs = configurations_for_request(request)
    print(f"📄 JSON file: {configs.json_file_path}")
    print(f"🗜️  ZIP file: {configs.zip_file_path}")
    print(f"📨 Fetch headers: {configs.fetch.headers}")
    print(f"📨 Upload form data: {configs.upload.form_data}")

    job = build_api_to_upload_job(1, request.workflow_name, configs)
    execution = await JobOrchestrator().execute_job(job, progress=lambda p: print(f"📊 Progress: {p}%"))

    print(f"🏁 Status: {execution.status.value}")
    for result in execution.task_results:
        print(f"   - {result.task_name}: {result.outcome.value} ({result.attempts} attempt(s))")
    if execution.error_message:
        print(f"❌ {execution.error_message}")
    return execution


if __name__ == "__main__":
    if len(sys.argv) != 4:
        print("usage: pipeline_example.py API_URL UPLOAD_URL OUTPUT_DIRECTORY")
        sys.exit(2)

    setup_logger("workflow_engine", level="INFO", structured=False)
    asyncio.run(run_pipeline(*sys.argv[1:]))
