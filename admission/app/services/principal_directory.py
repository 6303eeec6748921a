"""Principal directory: where subject ids are looked up for status and roles."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional


@dataclass(frozen=True)
class PrincipalRecord:
    """Directory entry for a subject."""
    subject_id: str
    active: bool = True
    roles: frozenset[str] = field(default_factory=frozenset)


class PrincipalDirectory(ABC):
    """Abstract base class for identity stores."""

    @abstractmethod
    async def lookup(self, subject_id: str) -> Optional[PrincipalRecord]:
        """Return the record for ``subject_id``, or None if unknown."""


class InMemoryPrincipalDirectory(PrincipalDirectory):
    """Dict-backed directory for tests and single-node setups."""

    def __init__(self, records: Optional[Iterable[PrincipalRecord]] = None) -> None:
        self._records: Dict[str, PrincipalRecord] = {}
        for record in records or ():
            self._records[record.subject_id] = record

    def add(
        self, subject_id: str, active: bool = True, roles: Iterable[str] = ()
    ) -> PrincipalRecord:
        record = PrincipalRecord(subject_id=subject_id, active=active, roles=frozenset(roles))
        self._records[subject_id] = record
        return record

    async def lookup(self, subject_id: str) -> Optional[PrincipalRecord]:
        return self._records.get(subject_id)
