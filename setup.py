#!/usr/bin/env python3
"""
Setup script for Quarry ORM.
"""

from setuptools import setup, find_packages

setup(
    name="quarry-orm",
    version="0.1.0",
    description="Async ORM with chainable querysets and live-schema migrations",
    author="Quarry Contributors",
    packages=find_packages(include=["quarry", "quarry.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "aiosqlite>=0.19.0",
        "python-dotenv>=1.0.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "postgres": [
            "asyncpg>=0.29.0",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Topic :: Database :: Front-Ends",
        "Framework :: AsyncIO",
    ],
    keywords="orm async sqlite postgresql migrations queryset",
)
