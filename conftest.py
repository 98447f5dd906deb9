"""
Root conftest: makes the repository root importable so tests can use
`src.*`, `entitlement_api.*` and `tests.helpers.*` without an install.
"""
