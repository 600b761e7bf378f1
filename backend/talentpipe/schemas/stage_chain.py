from __future__ import annotations

from typing import Any, Iterable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from talentpipe.core.errors import ValidationError


class StageChainEntry(BaseModel):
    """One position of a candidate's stage chain."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True, frozen=True)

    stage_name: str = Field(min_length=1, max_length=255, validation_alias=AliasChoices("stage_name", "stageName"))
    interviewer_id: int = Field(gt=0, validation_alias=AliasChoices("interviewer_id", "interviewerId"))


def parse_stage_chain(raw: Iterable[Any] | None) -> list[StageChainEntry]:
    """Validate a chain payload, accepting entries or plain mappings (camelCase or snake_case keys)."""
    items = list(raw or [])
    if not items:
        raise ValidationError("Stage chain must contain at least one stage.", details={"field": "chain"})

    entries: list[StageChainEntry] = []
    for position, item in enumerate(items):
        if isinstance(item, StageChainEntry):
            entries.append(item)
            continue
        try:
            entries.append(StageChainEntry.model_validate(item))
        except PydanticValidationError as exc:
            missing = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
            raise ValidationError(
                f"Stage chain entry {position} is invalid: stage name and interviewer are required.",
                details={"position": position, "fields": missing},
            ) from exc
    return entries


def chain_to_json(entries: Iterable[StageChainEntry]) -> list[dict[str, Any]]:
    return [entry.model_dump() for entry in entries]
