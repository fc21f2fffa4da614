"""Persistence collaborators for journey circles.

The workflow core only talks to ``JourneyRepository``; identifiers are opaque
integers handed out by the repository.
"""

import itertools
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from contracts import JourneyCircle, JourneyRecord, ServiceArea
from errors import ExternalServiceError, IntegrityViolation

logger = logging.getLogger(__name__)


class JourneyRepository(ABC):
    """Abstract persistence collaborator."""

    @abstractmethod
    def next_id(self) -> int:
        """Allocate a fresh opaque identifier."""
        pass

    @abstractmethod
    def create_service_area(self, title: str, client_id: Optional[int] = None) -> ServiceArea:
        pass

    @abstractmethod
    def get_service_area(self, service_area_id: int) -> Optional[ServiceArea]:
        pass

    @abstractmethod
    def has_circle(self, service_area_id: int) -> bool:
        pass

    @abstractmethod
    def create_circle(self, service_area_id: int) -> int:
        """Register the journey circle of a service area and return its id.

        Raises:
            IntegrityViolation: If the service area already has a circle
        """
        pass

    @abstractmethod
    def load(self, service_area_id: int) -> Optional[JourneyRecord]:
        pass

    @abstractmethod
    def save(self, record: JourneyRecord) -> int:
        """Persist a record and return the circle id."""
        pass


class InMemoryRepository(JourneyRepository):
    """Dictionary-backed repository, used by tests and single-process sessions."""

    def __init__(self, start_id: int = 1):
        self._ids = itertools.count(start_id)
        self._service_areas: Dict[int, ServiceArea] = {}
        self._circles: Dict[int, int] = {}  # service_area_id -> circle_id
        self._records: Dict[int, JourneyRecord] = {}  # service_area_id -> record

    def next_id(self) -> int:
        return next(self._ids)

    def create_service_area(self, title: str, client_id: Optional[int] = None) -> ServiceArea:
        area = ServiceArea(id=self.next_id(), client_id=client_id, title=title)
        self._service_areas[area.id] = area
        return area.model_copy()

    def get_service_area(self, service_area_id: int) -> Optional[ServiceArea]:
        area = self._service_areas.get(service_area_id)
        return area.model_copy() if area else None

    def has_circle(self, service_area_id: int) -> bool:
        return service_area_id in self._circles

    def create_circle(self, service_area_id: int) -> int:
        if service_area_id not in self._service_areas:
            raise IntegrityViolation(f"Service area {service_area_id} does not exist")
        if self.has_circle(service_area_id):
            raise IntegrityViolation(
                f"Service area {service_area_id} already has journey circle {self._circles[service_area_id]}"
            )
        circle_id = self.next_id()
        self._circles[service_area_id] = circle_id
        return circle_id

    def load(self, service_area_id: int) -> Optional[JourneyRecord]:
        record = self._records.get(service_area_id)
        return record.model_copy(deep=True) if record else None

    def save(self, record: JourneyRecord) -> int:
        circle = self._check_registered(record)
        self._records[circle.service_area_id] = record.model_copy(deep=True)
        return circle.id

    def _check_registered(self, record: JourneyRecord) -> JourneyCircle:
        circle = record.snapshot.circle
        if circle.id is None or circle.service_area_id is None:
            raise IntegrityViolation("Cannot save a journey circle before its service area is committed")
        if self._circles.get(circle.service_area_id) != circle.id:
            raise IntegrityViolation(
                f"Journey circle {circle.id} is not registered for service area {circle.service_area_id}"
            )
        return circle


class JsonFileRepository(InMemoryRepository):
    """Repository that mirrors its state into JSON files under a data directory.

    Layout:
        index.json                 id sequence, service areas, circle registry
        circle_<service_area>.json one JourneyRecord per circle
    """

    INDEX_FILE = "index.json"

    def __init__(self, data_dir: str):
        super().__init__()
        self.data_dir = Path(data_dir)
        self._last_id = 0
        self._load_index()

    def _index_path(self) -> Path:
        return self.data_dir / self.INDEX_FILE

    def _record_path(self, service_area_id: int) -> Path:
        return self.data_dir / f"circle_{service_area_id}.json"

    def _load_index(self) -> None:
        path = self._index_path()
        if not path.exists():
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ExternalServiceError(f"Could not read {path}: {e}", service="persistence") from e

        self._last_id = int(data.get("last_id", 0))
        self._ids = itertools.count(self._last_id + 1)
        self._service_areas = {
            int(a["id"]): ServiceArea.model_validate(a) for a in data.get("service_areas", [])
        }
        self._circles = {int(k): int(v) for k, v in data.get("circles", {}).items()}

    def _write_index(self) -> None:
        index = {
            "last_id": self._last_id,
            "service_areas": [a.model_dump() for a in self._service_areas.values()],
            "circles": {str(k): v for k, v in self._circles.items()},
        }
        self._write(self._index_path(), json.dumps(index, indent=2))

    def _write(self, path: Path, text: str) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise ExternalServiceError(f"Could not write {path}: {e}", service="persistence") from e

    def next_id(self) -> int:
        self._last_id = super().next_id()
        self._write_index()
        return self._last_id

    def create_service_area(self, title: str, client_id: Optional[int] = None) -> ServiceArea:
        area = super().create_service_area(title, client_id)
        try:
            self._write_index()
        except ExternalServiceError:
            del self._service_areas[area.id]
            raise
        return area

    def create_circle(self, service_area_id: int) -> int:
        circle_id = super().create_circle(service_area_id)
        try:
            self._write_index()
        except ExternalServiceError:
            # Unregister so a retry can create the circle again
            del self._circles[service_area_id]
            raise
        return circle_id

    def load(self, service_area_id: int) -> Optional[JourneyRecord]:
        record = super().load(service_area_id)
        if record is not None:
            return record
        path = self._record_path(service_area_id)
        if not path.exists():
            return None
        try:
            record = JourneyRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ExternalServiceError(f"Could not read {path}: {e}", service="persistence") from e
        self._records[service_area_id] = record
        return record.model_copy(deep=True)

    def save(self, record: JourneyRecord) -> int:
        circle = self._check_registered(record)
        self._write(self._record_path(circle.service_area_id), record.model_dump_json(indent=2))
        self._records[circle.service_area_id] = record.model_copy(deep=True)
        logger.info("Saved journey circle %s for service area %s", circle.id, circle.service_area_id)
        return circle.id
