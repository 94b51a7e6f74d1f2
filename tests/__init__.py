"""
Gloworld Test Suite.

This package contains:
- unit/: Unit tests (definitions, registry, catalog, policy, triggers)
- integration/: Integration tests (bootstrap, guarded operations, CLI)
"""
