from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

# Slots addressable in one class column. The table only ever fills LESSON_GROUPS of them.
BLOCK_COUNT = 6
LESSON_GROUPS = 5


class Schoolday(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"

    def next_day(self) -> "Schoolday":
        return _NEXT_DAY[self]

    @property
    def german_name(self) -> str:
        return _GERMAN_NAMES[self]

    @classmethod
    def from_weekday(cls, weekday: int) -> "Schoolday":
        """
        Maps a Python weekday (0 = Monday ... 6 = Sunday) to the relevant school day.
        Saturday and Sunday fall onto the coming Monday.
        """
        return _FROM_WEEKDAY.get(weekday, cls.MONDAY)

    def __str__(self) -> str:
        return self.value


_NEXT_DAY = {
    Schoolday.MONDAY: Schoolday.TUESDAY,
    Schoolday.TUESDAY: Schoolday.WEDNESDAY,
    Schoolday.WEDNESDAY: Schoolday.THURSDAY,
    Schoolday.THURSDAY: Schoolday.FRIDAY,
    Schoolday.FRIDAY: Schoolday.MONDAY,
}

_GERMAN_NAMES = {
    Schoolday.MONDAY: "Montag",
    Schoolday.TUESDAY: "Dienstag",
    Schoolday.WEDNESDAY: "Mittwoch",
    Schoolday.THURSDAY: "Donnerstag",
    Schoolday.FRIDAY: "Freitag",
}

_FROM_WEEKDAY = {
    0: Schoolday.MONDAY,
    1: Schoolday.TUESDAY,
    2: Schoolday.WEDNESDAY,
    3: Schoolday.THURSDAY,
    4: Schoolday.FRIDAY,
}


class SubstitutionColumn(BaseModel):
    """
    Substitutions of one class, one optional text per lesson block.
    Serialized with the block index as key; absent blocks are left out.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    block_0: Optional[str] = Field(None, alias="0")
    block_1: Optional[str] = Field(None, alias="1")
    block_2: Optional[str] = Field(None, alias="2")
    block_3: Optional[str] = Field(None, alias="3")
    block_4: Optional[str] = Field(None, alias="4")
    block_5: Optional[str] = Field(None, alias="5")

    def block(self, idx: int) -> Optional[str]:
        if not 0 <= idx < BLOCK_COUNT:
            raise IndexError(f"lesson block {idx} out of range")
        return getattr(self, f"block_{idx}")

    def blocks(self) -> List[Optional[str]]:
        return [self.block(i) for i in range(BLOCK_COUNT)]

    @classmethod
    def from_blocks(cls, blocks: Sequence[Optional[str]]) -> "SubstitutionColumn":
        if len(blocks) > BLOCK_COUNT:
            raise ValueError(f"a column holds at most {BLOCK_COUNT} blocks, got {len(blocks)}")
        return cls(**{f"block_{i}": text for i, text in enumerate(blocks)})


class SubstitutionSchedule(BaseModel):
    """Extracted content of one substitution document."""

    model_config = ConfigDict(frozen=True)

    # Issue date printed in the document, epoch milliseconds at midnight
    pdf_issue_date: int
    # Class name -> substitutions of that class
    entries: Dict[str, SubstitutionColumn]
    # Build time in epoch milliseconds, only used to compare ages
    struct_time: int

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_json_value(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, raw: str) -> "SubstitutionSchedule":
        return cls.model_validate_json(raw)


class UpdateStatus(str, Enum):
    UNCHANGED = "unchanged"
    REPLACED = "replaced"
    FAILED = "failed"


@dataclass(frozen=True)
class UpdateOutcome:
    status: UpdateStatus
    reason: Optional[str] = None

    @classmethod
    def unchanged(cls) -> "UpdateOutcome":
        return cls(UpdateStatus.UNCHANGED)

    @classmethod
    def replaced(cls) -> "UpdateOutcome":
        return cls(UpdateStatus.REPLACED)

    @classmethod
    def failed(cls, reason: str) -> "UpdateOutcome":
        return cls(UpdateStatus.FAILED, reason)


@dataclass(frozen=True)
class AuditRecord:
    hash: str
    pdf_date: datetime
    insertion_time: datetime
    json: Dict[str, Any] = field(default_factory=dict)
