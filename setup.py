"""
Setup script for the AI tool entitlement service.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_namespace_packages

setup(
    name="catalyst-entitlements",
    version="1.0.0",
    packages=find_namespace_packages(include=["src", "src.*", "entitlement_api", "entitlement_api.*"]),
    py_modules=["version"],
    python_requires=">=3.11",
    install_requires=[
        "pymongo>=4.6",
        "python-dotenv>=1.0",
        "tenacity>=8.2",
        "requests>=2.31",
        "fastapi>=0.110",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "httpx>=0.25",
        ],
    },
)
