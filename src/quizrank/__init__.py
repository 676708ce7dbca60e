"""
QuizRank
========

Leaderboard engine for a gamified learning platform: ingests quiz
completions, maintains per-user standings and serves ordered rankings
across global, weekly, monthly and per-category views.
"""

__version__ = "0.1.0"
