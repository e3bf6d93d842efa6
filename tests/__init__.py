"""
Monster Arena Test Suite
========================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with mocks (no external dependencies)
- tests/integration/   : Integration tests with testcontainers (real PostgreSQL and Redis)
- tests/builders.py    : Battle record and skill builders shared by unit tests

Testing Philosophy
------------------
- Unit tests: Fast, isolated, test battle rules and pipeline ordering
- Integration tests: Slower, test versioned writes, locks and settlement
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
