"""
QuizRank Test Suite
===================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with fakes (no external dependencies)
- tests/integration/   : Storage backend tests (SQLite, testcontainers)
"""
