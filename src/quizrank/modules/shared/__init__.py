"""
QuizRank Shared Module

Purpose
-------
Domain-level foundations for ranking services:
- Domain exceptions and error handling
- BaseService (logging and event emission)

Infrastructure concerns (database, Redis, HTTP) stay in `quizrank.core`
and the storage adapters.
"""
