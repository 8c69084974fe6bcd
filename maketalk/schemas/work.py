"""Work items, section groups and stage results.

A WorkItem is discovered by scanning a stage's input directory and never
changes afterwards; what a stage produced for it is recorded in the
StageResult, not on the item.
"""

import re
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from maketalk.orchestrator.state import Stage

SECTION_PREFIX = re.compile(r"^(\d{2})-")


def parse_section_id(filename: str) -> Optional[str]:
    """Return the two-digit section token of NN-name.ext, or None."""
    match = SECTION_PREFIX.match(filename)
    return match.group(1) if match else None


class WorkItem(BaseModel):
    """One unit of work for a stage, usually one file."""

    model_config = ConfigDict(frozen=True)

    section_id: str = Field(pattern=r"^\d{2}$")
    source_path: Path

    @property
    def name(self) -> str:
        return self.source_path.name

    @property
    def item_id(self) -> str:
        """Identifier used in logs and StageResult bookkeeping."""
        return self.source_path.stem

    @classmethod
    def from_path(cls, path: Path) -> "WorkItem":
        section_id = parse_section_id(path.name)
        if section_id is None:
            raise ValueError(f"{path.name} has no two-digit section prefix")
        return cls(section_id=section_id, source_path=path)


class SectionGroup(BaseModel):
    """All parts that make up one section, ordered by filename."""

    model_config = ConfigDict(frozen=True)

    section_id: str
    parts: tuple[WorkItem, ...]

    @property
    def is_multipart(self) -> bool:
        return len(self.parts) > 1

    @property
    def item_id(self) -> str:
        return f"section {self.section_id}"


def group_sections(items: list[WorkItem]) -> list[SectionGroup]:
    """Group items by section id; groups and parts come back sorted."""
    grouped: dict[str, list[WorkItem]] = {}
    for item in items:
        grouped.setdefault(item.section_id, []).append(item)

    return [
        SectionGroup(
            section_id=section_id,
            parts=tuple(sorted(parts, key=lambda i: i.name)),
        )
        for section_id, parts in sorted(grouped.items())
    ]


class StageResult(BaseModel):
    """Outcome of one stage over all its work items.

    A stage is complete only when every surviving item has its output file;
    failed items are excluded from outputs, never half-recorded.
    """

    stage: Stage
    succeeded: list[Union[WorkItem, SectionGroup]] = Field(default_factory=list)
    failed: list[Union[WorkItem, SectionGroup]] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)
    outputs: dict[str, Path] = Field(default_factory=dict)
    skipped_reason: Optional[str] = None
    deferral: Optional[str] = None
    instructions: list[str] = Field(default_factory=list)

    @property
    def failed_ids(self) -> list[str]:
        return [item.item_id for item in self.failed]

    @property
    def succeeded_ids(self) -> list[str]:
        return [item.item_id for item in self.succeeded]
