"""moexfeed tests.

Test organization:
- unit/: Fast unit tests, no external services
- fixtures/: ISS payload builders and collaborator doubles

Run tests with pytest:
    pytest tests/unit/ -v
"""
