"""
Dataset store adapters.

The query engine only ever reads named record collections (expenses,
investments, and the cards used for card advice). Storage, encryption and
editing of those records belong to the host application; these adapters
just hand out read-only snapshots.
"""

import copy
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger("finquery.datasets")

COLLECTIONS = ("expenses", "investments", "cards")


class DatasetError(Exception):
    """Base exception for dataset access."""
    pass


class DatasetStore(ABC):
    """Read-only access to named record collections."""

    @abstractmethod
    def _records(self, name: str) -> List[Dict[str, Any]]:
        pass

    def get_collection(self, name: str) -> List[Dict[str, Any]]:
        """
        Return a snapshot of a collection.

        The snapshot is a deep copy, so nothing done during a query
        can leak back into the store.
        """
        if name not in COLLECTIONS:
            raise DatasetError(f"Unknown collection: {name}")
        return copy.deepcopy(self._records(name))

    def counts(self) -> Dict[str, int]:
        return {name: len(self._records(name)) for name in COLLECTIONS}


class InMemoryDatasetStore(DatasetStore):
    """Collections held in plain Python lists."""

    def __init__(self, expenses: Optional[List[Dict[str, Any]]] = None,
                 investments: Optional[List[Dict[str, Any]]] = None,
                 cards: Optional[List[Dict[str, Any]]] = None):
        self._data = {
            "expenses": list(expenses or []),
            "investments": list(investments or []),
            "cards": list(cards or []),
        }

    def _records(self, name: str) -> List[Dict[str, Any]]:
        return self._data[name]


class JSONDatasetStore(DatasetStore):
    """
    Collections loaded from a JSON file shaped like
    {"expenses": [...], "investments": [...], "cards": [...]}.

    A missing file is treated as empty collections. The file is read once;
    call reload() after the host application rewrites it.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._data: Dict[str, List[Dict[str, Any]]] = {}
        self.reload()

    def reload(self) -> None:
        if not self.path.exists():
            logger.warning("Dataset file not found at %s, using empty collections", self.path)
            self._data = {name: [] for name in COLLECTIONS}
            return

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise DatasetError(f"Could not read dataset file {self.path}: {e}") from e

        if not isinstance(raw, dict):
            raise DatasetError(f"Dataset file {self.path} must contain a JSON object")

        self._data = {}
        for name in COLLECTIONS:
            records = raw.get(name) or []
            if not isinstance(records, list):
                raise DatasetError(f"'{name}' in {self.path} must be a list")
            self._data[name] = [r for r in records if isinstance(r, dict)]
        logger.info("Loaded dataset from %s: %s", self.path, self.counts())

    def _records(self, name: str) -> List[Dict[str, Any]]:
        return self._data[name]


def create_dataset_store(path: Optional[str] = None) -> DatasetStore:
    """JSON-backed store for path, or an empty in-memory store when path is None."""
    if path is None:
        return InMemoryDatasetStore()
    return JSONDatasetStore(path)
