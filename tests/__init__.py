"""
Test suite for the supplier catalog backend.

Run all tests: pytest
Run with coverage: pytest --cov=. --cov-report=html
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_import_engine.py -v
"""
