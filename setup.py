#!/usr/bin/env python3
"""
Setup script para Coding Agent Planner
"""

from setuptools import setup, find_packages
from pathlib import Path

# Leer README
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding='utf-8')

setup(
    name="coding-agent-planner",
    version="0.1.0",
    description="Planes paso a paso y parches de código generados por IA, con reconstrucción de archivos",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Software Development :: Code Generators",
    ],
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.25.0",
        "python-dotenv>=0.19.0",
        "fastapi>=0.100.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "uvicorn>=0.20.0",
    ],
    extras_require={
        "dev": [
            "black>=22.0.0",
            "flake8>=4.0.0",
            "mypy>=0.950",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-mock>=3.6.0",
            "httpx>=0.24.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "coding-agent-planner=coding_agent_planner.cli.main:main",
            "cap=coding_agent_planner.cli.main:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
