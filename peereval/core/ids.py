"""
Identifier generation for new entities.
"""

import itertools
import random
import threading
import uuid
from typing import Optional

from .interfaces import IdGenerator


REGISTRATION_CODE_MIN = 100000
REGISTRATION_CODE_MAX = 999999


class RandomIdGenerator(IdGenerator):
    """Random version-4 UUID text (8-4-4-4-12 hex, variant 8/9/a/b)."""
    
    def generate(self) -> str:
        return str(uuid.uuid4())


class SequentialIdGenerator(IdGenerator):
    """Deterministic generator producing UUID-shaped ids in sequence.

    Meant for reproducible demos and tests; ids keep the version-4 layout so
    they pass the same shape checks as random ones.
    """
    
    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()
    
    def generate(self) -> str:
        with self._lock:
            value = next(self._counter)
        return f"00000000-0000-4000-8000-{value:012x}"


def generate_registration_code(rng: Optional[random.Random] = None) -> str:
    """Return a six digit course registration code."""
    rng = rng or random.Random()
    return str(rng.randint(REGISTRATION_CODE_MIN, REGISTRATION_CODE_MAX))
