"""
Test suite for Supplier Catalog Sync.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_batch_validator.py -v
"""
