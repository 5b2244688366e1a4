"""Book Shelf API - core package

This package contains the storage side of the service:
- Book record and row mapping (book.py)
- Connection pool and schema bootstrap (database.py)
- Book operations over the pool (library.py)
"""
