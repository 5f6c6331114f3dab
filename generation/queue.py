"""
Huey task queue for background generation runs.

REDIS_URL       broker (default redis://localhost:6379/0)
HUEY_IMMEDIATE  "1" runs tasks inline with in-memory storage (tests, local dev)
"""

import os

from huey import RedisHuey

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
HUEY_IMMEDIATE = os.getenv("HUEY_IMMEDIATE", "").strip().lower() in ("1", "true", "yes")

huey_queue = RedisHuey("question-generation", url=REDIS_URL, immediate=HUEY_IMMEDIATE)
