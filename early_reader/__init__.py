"""
Early Reader

A card scheduler for a phonics reading curriculum: phoneme-gated unlocking,
a learning phase for new cards, and SM-2 spaced repetition.
"""

from . import structured
from . import catalog
from . import unlock
from . import scheduler
from . import learning
from . import curriculum
from . import selector
from . import db

from .catalog import Catalog, load_default_catalog
from .memory_store import InMemoryProgressStore
from .session import LearnerSession
from .selector import get_card_queue, get_next_card, record_card_completion

__version__ = "0.1.0"
__all__ = [
    "structured", "catalog", "unlock", "scheduler", "learning", "curriculum", "selector", "db",
    "Catalog", "load_default_catalog", "InMemoryProgressStore", "LearnerSession",
    "get_next_card", "get_card_queue", "record_card_completion",
]
