"""
Setup script for the Workflow Engine

An asyncio job/task execution engine: ordered typed tasks executed through
pluggable handlers with retry, timeout, cancellation and progress tracking.
"""

from setuptools import setup, find_packages
import pathlib

here = pathlib.Path(__file__).parent.resolve()

# Get the long description from the README file
try:
    long_description = (here / "README.md").read_text(encoding="utf-8")
except FileNotFoundError:
    long_description = """
    Workflow Engine

    An asyncio job/task execution engine with a built-in
    API -> file -> compress -> upload pipeline.
    """

setup(
    name="workflow-engine",
    version="1.0.0",
    description="Asyncio job and task execution engine with retry, timeout and cancellation",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Workflow Engine Team",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: System :: Systems Administration",
    ],
    keywords="workflow, job orchestration, pipeline, retry, async",
    packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),
    python_requires=">=3.9",
    install_requires=[
        # Core dependencies
        "asyncpg>=0.27.0",
        "click>=8.0.0",

        # Handlers: async HTTP, file IO and SFTP
        "aiofiles>=23.1.0",
        "httpx>=0.24.0",
        "paramiko>=3.0.0",

        # Configuration and serialization
        "pyyaml>=6.0",
        "pydantic>=2.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "black>=22.0.0",
            "isort>=5.10.0",
            "mypy>=1.0.0",
            "coverage>=6.0.0",
            "flake8>=5.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "workflow-engine=workflow_engine.cli.main:main",
        ],
    },
)
