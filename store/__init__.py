"""Store module: the in-memory aggregate and its persistence collaborators."""

from .step_data_store import StepDataStore, STEP_KEYS
from .repository import JourneyRepository, InMemoryRepository, JsonFileRepository

__all__ = [
    "StepDataStore",
    "STEP_KEYS",
    "JourneyRepository",
    "InMemoryRepository",
    "JsonFileRepository",
]
