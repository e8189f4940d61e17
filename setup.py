"""Setup file for development installation."""

from setuptools import setup, find_packages

setup(
    name="communitylink-engine",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "structlog>=23.1",
        "google-generativeai>=0.8",
        "prometheus-client>=0.17",
        "opentelemetry-instrumentation-fastapi>=0.41b0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.21",
            "httpx>=0.27",
        ],
    },
)
