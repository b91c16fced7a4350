"""
Setup script for doomless.

Doomless turns imported documents into swipeable learning content.
This package is its content-generation pipeline:

1. Fact Extraction - Short standalone facts from arbitrary text
2. Quiz Generation - Multiple-choice questions from batches of facts
3. Preference Analysis - Coarse topic preferences from swipe history

An on-device model (served by Ollama) is used when available; otherwise
deterministic heuristics keep the same contract.
"""

from setuptools import find_packages, setup

setup(
    name="doomless",
    version="0.1.0",
    description="Fact, quiz, and preference generation for the Doomless learning feed",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Doomless",
    packages=find_packages(include=["doomless", "doomless.*"]),
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
            "ollama>=0.4.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "ollama>=0.4.0",
        ],
        "local-ai": [
            "ollama>=0.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "doomless=doomless.cli:run",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Text Processing",
    ],
    keywords="learning facts quiz llm ollama education",
)
