"""
Scorekeep Test Suite
====================

Test Organization
-----------------
- tests/unit/          : Fast unit tests against in-memory fakes
- tests/integration/   : Integration tests with testcontainers (real PostgreSQL)

Testing Philosophy
------------------
- Unit tests: fast, isolated, exercise rank/cache/retention logic
- Integration tests: slower, exercise the SQLAlchemy record store
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
