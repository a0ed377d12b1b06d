#!/usr/bin/env python3
"""Setup script for MindCanvas."""

import os
import sys
from setuptools import setup, find_packages


def _run_install_preflight() -> None:
    """Fail fast on unsupported environments.

    Note: installing from a wheel will not execute setup.py, so we also
    enforce this at runtime via `mindcanvas.launcher`.
    """
    if os.environ.get("MINDCANVAS_SKIP_PREFLIGHT") == "1":
        return
    if sys.version_info < (3, 11):
        sys.stderr.write("\nMindCanvas requires Python 3.11 or newer.\n")
        raise SystemExit(1)


_run_install_preflight()

setup(
    name="mindcanvas",
    version="1.0.0",
    description="A collaborative mind-map editor for the Linux desktop",
    author="MindCanvas Project",
    license="MIT",
    packages=find_packages(exclude=("tests", "tests.*")),
    python_requires=">=3.11",
    install_requires=[
        "PyGObject>=3.46.0",
        "pycairo>=1.25.0",
        "requests>=2.31.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mindcanvas=mindcanvas.launcher:main",
            "mindcanvas-export=mindcanvas.export:main",
        ],
        "gui_scripts": [
            "mindcanvas-gui=mindcanvas.launcher:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: X11 Applications :: GTK",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business",
    ],
)
