"""Setup configuration for pdfbot."""

from setuptools import setup, find_packages

setup(
    name="pdfbot",
    version="1.0.0",
    description="Durable, retryable job queue that turns URLs into PDFs",
    author="Your Name",
    packages=find_packages(include=["pdfbot", "pdfbot.*"]),
    install_requires=[
        "click>=8.1.7",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "httpx>=0.25.0",
        "boto3>=1.28.0",
        "playwright>=1.40.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
    entry_points={
        "console_scripts": [
            "pdfbot=pdfbot.cli:cli",
        ],
    },
    python_requires=">=3.9",
)
