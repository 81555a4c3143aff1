"""
Test suite for autoschema.

- Unit tests for the declaration, diffing and driver layers
- Integration tests that reconcile real SQLite and PostgreSQL databases
"""
