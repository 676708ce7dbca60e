import sys

from quizrank.main import run

sys.exit(run())
