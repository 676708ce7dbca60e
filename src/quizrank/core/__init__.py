"""
Core infrastructure: configuration, logging, events, database and Redis.

Nothing under `core` knows about rankings; domain code lives in
`quizrank.modules`.
"""
