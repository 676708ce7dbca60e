from quizrank.core.config.config import CacheBackend, Config, Environment

__all__ = ["Config", "Environment", "CacheBackend"]
