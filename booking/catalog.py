from __future__ import annotations

from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from booking.models import Equipment, Studio


class CatalogPort(ABC):
    @abstractmethod
    def studio_exists(self, studio_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def studio_name(self, studio_id: str) -> str | None:
        """Display name of an active studio, or None when it does not exist."""
        raise NotImplementedError

    @abstractmethod
    def is_equipment_available(self, studio_id: str, equipment_id: str) -> bool:
        raise NotImplementedError


class SqlCatalog(CatalogPort):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def studio_exists(self, studio_id: str) -> bool:
        return self.studio_name(studio_id) is not None

    def studio_name(self, studio_id: str) -> str | None:
        with self._session_factory() as db:
            stmt = select(Studio.name).where(Studio.id == studio_id, Studio.is_active.is_(True))
            return db.scalar(stmt)

    def is_equipment_available(self, studio_id: str, equipment_id: str) -> bool:
        with self._session_factory() as db:
            stmt = select(Equipment.id).where(
                Equipment.id == equipment_id,
                Equipment.studio_id == studio_id,
                Equipment.is_available.is_(True),
            )
            return db.scalar(stmt) is not None
