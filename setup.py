#!/usr/bin/env python3
"""
Setup script for UCI Driver.

Drive UCI chess engines (Stockfish, Leela, ...) from asyncio code: send a
position and search limits, get back the best move and ponder move.
"""

from pathlib import Path
from setuptools import setup, find_packages

# Read the contents of README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding='utf-8') if (this_directory / "README.md").exists() else ""

# Read version from package
version_file = this_directory / "uci_driver" / "__init__.py"
version = "0.1.0"  # Default version
if version_file.exists():
    with open(version_file, encoding='utf-8') as f:
        for line in f:
            if line.startswith('__version__'):
                version = line.split('=')[1].strip().strip('"').strip("'")
                break

setup(
    name="uci-driver",
    version=version,
    description="Drive UCI chess engines over stdin/stdout from asyncio code",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="UCI Driver Team",
    author_email="uci-driver@example.com",

    # Package discovery
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",

    # Dependencies
    install_requires=[
        "python-chess>=1.999",
        "rich>=13.0.0",
    ],

    # Optional dependencies
    extras_require={
        "dev": [
            "pytest>=7.0.0",
        ],
    },

    # Entry points for CLI
    entry_points={
        "console_scripts": [
            "uci-driver=uci_driver.cli:main",
        ],
    },

    # Classifiers
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Games/Entertainment :: Board Games",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: POSIX",
        "Environment :: Console",
        "Framework :: AsyncIO",
    ],

    # Keywords
    keywords=[
        "chess",
        "uci",
        "engine",
        "stockfish",
        "asyncio",
        "subprocess",
    ],

    zip_safe=False,

    # Test configuration
    test_suite="tests",
    tests_require=[
        "pytest>=7.0.0",
    ],
)
