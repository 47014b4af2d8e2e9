"""
boardstore test suite.

This package contains:
- unit/: Unit tests against temporary SQLite databases
"""
