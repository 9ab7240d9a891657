from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from plm.images.errors import InvalidRuleGroup

EQUALITY_OPS = {"eq", "=", "=="}


class GroupOp(str, Enum):
    AND = "AND"
    OR = "OR"


class Rule(BaseModel):
    """One equality filter: documents whose ``field`` contains ``data``."""

    model_config = ConfigDict(extra="forbid")

    field: Literal["tags"]
    op: str = "eq"
    data: str = Field(min_length=1)

    @field_validator("op")
    @classmethod
    def _equality_only(cls, v: str) -> str:
        if v not in EQUALITY_OPS:
            raise ValueError(f"unsupported op {v!r}; expected one of {sorted(EQUALITY_OPS)}")
        return "eq"

    @field_validator("data")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("data must be a non-empty tag")
        return v


class RuleGroup(BaseModel):
    """Flat boolean group of rules. Nested groups are not accepted."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    group_op: GroupOp = Field(alias="groupOp")
    rules: list[Rule] = Field(default_factory=list)

    @field_validator("group_op", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("rules", mode="before")
    @classmethod
    def _reject_nested(cls, v: Any) -> Any:
        if isinstance(v, list):
            for r in v:
                if isinstance(r, RuleGroup) or (
                    isinstance(r, dict) and {"groupOp", "group_op", "rules"} & r.keys()
                ):
                    raise ValueError("nested rule groups are not supported")
        return v


def parse_rule_group(raw: RuleGroup | dict[str, Any]) -> RuleGroup:
    if isinstance(raw, RuleGroup):
        return raw
    if not isinstance(raw, dict):
        raise InvalidRuleGroup(f"rule group must be a mapping, got {type(raw).__name__}")
    try:
        return RuleGroup.model_validate(raw)
    except ValidationError as ve:
        raise InvalidRuleGroup(_describe(ve)) from ve


def _describe(ve: ValidationError) -> str:
    parts = []
    for err in ve.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "invalid rule group: " + "; ".join(parts)
