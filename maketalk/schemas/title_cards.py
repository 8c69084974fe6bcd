"""Schemas for the externally authored title card document.

title_cards.json is written by a human or an LLM. The pipeline validates its
shape and coverage and otherwise treats it as read-only input; unknown keys
such as "instructions" are kept so a round trip never loses notes.
"""

from typing import Annotated, Any, Iterable

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator


def _coerce_section_number(v: Any) -> Any:
    """Accept 1 or "1" for section "01"."""
    if isinstance(v, int):
        return f"{v:02d}"
    if isinstance(v, str) and v.isdigit() and len(v) == 1:
        return f"0{v}"
    return v


SectionNumber = Annotated[str, BeforeValidator(_coerce_section_number)]


class TitleCard(BaseModel):
    """Title and subtitle rendered in front of one section."""

    number: SectionNumber = Field(pattern=r"^\d{2}$")
    title: str = Field(min_length=1)
    description: str = ""


class TitleCardDocument(BaseModel):
    """Top-level shape of title_cards.json."""

    model_config = ConfigDict(extra="allow")

    title_cards: list[TitleCard]

    @field_validator("title_cards")
    @classmethod
    def unique_numbers(cls, cards: list[TitleCard]) -> list[TitleCard]:
        seen: set[str] = set()
        duplicates = []
        for card in cards:
            if card.number in seen:
                duplicates.append(card.number)
            seen.add(card.number)
        if duplicates:
            raise ValueError(f"duplicate section numbers: {', '.join(sorted(set(duplicates)))}")
        return cards

    @property
    def by_section(self) -> dict[str, TitleCard]:
        return {card.number: card for card in self.title_cards}

    def missing_sections(self, section_ids: Iterable[str]) -> list[str]:
        """Section ids that have no card."""
        covered = self.by_section
        return sorted(s for s in set(section_ids) if s not in covered)


class SectionInfo(BaseModel):
    """One row of the sections.json reference file."""

    number: str
    filename: str
    duration: str


class SectionsDocument(BaseModel):
    """sections.json, written for reference in the manual title workflow."""

    sections: list[SectionInfo]
    note: str = "This file contains information about your video sections"
