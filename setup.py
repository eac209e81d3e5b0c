"""
Setup script for the health-storage project.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="health-storage",
    version="0.1.0",
    packages=find_packages(include=["src", "src.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pymongo>=4.2",
        "python-dotenv>=1.0",
        "pydantic>=2.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
)
