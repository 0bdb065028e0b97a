"""Setup script for miniclaw package."""

from setuptools import setup, find_packages

setup(
    name="miniclaw",
    version="0.1.0",
    description="A terminal AI agent runtime with streaming tool calling and concurrent sessions",
    packages=find_packages(include=["miniclaw", "miniclaw.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml>=6.0",
        "httpx>=0.25.0",
    ],
    extras_require={
        "openai": ["openai>=1.0"],
        "anthropic": ["anthropic>=0.25"],
        "all": [
            "openai>=1.0",
            "anthropic>=0.25",
        ],
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "miniclaw=miniclaw.main:main",
        ],
    },
    package_data={
        "miniclaw": ["config/default_config.yaml"],
    },
)
