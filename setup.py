#!/usr/bin/env python3
"""
Setup script for the Typing Analytics Python package.
Makes the event model and metrics engine pip-installable.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

setup(
    name="typing-analytics",
    version="1.0.0",
    description="Behavioral event model and typing metrics engine for tracked writing sessions",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="scripts", exclude=["tests"]),
    package_dir={"": "scripts"},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.21.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "flake8>=6.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "typing-analytics=metrics.cli:main",
        ],
    },
    include_package_data=True,
    package_data={
        "": [
            "config/*.json",
        ],
    },
)
