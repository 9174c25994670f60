"""
Read-only models of a Spanner query plan and its result set statistics.

The models accept Spanner's JSON form (camelCase, as printed by
`gcloud spanner databases execute-sql --query-mode=PROFILE --format=json`
or produced by protobuf's MessageToDict) as well as snake_case keys.
"""

import json
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# A metadata value is either a plain string or a structured JSON value
# (number, bool, list or object).
MetadataValue = Union[str, int, float, bool, list, dict]


class _FrozenModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Kind(str, Enum):
    KIND_UNSPECIFIED = "KIND_UNSPECIFIED"
    RELATIONAL = "RELATIONAL"
    SCALAR = "SCALAR"


# protobuf enum numbers, for payloads serialized with integer enums
_KIND_BY_NUMBER = {0: Kind.KIND_UNSPECIFIED, 1: Kind.RELATIONAL, 2: Kind.SCALAR}


class ChildLink(_FrozenModel):
    child_index: int = Field(default=0, ge=0)
    type: str = ""
    variable: str = ""


class ShortRepresentation(_FrozenModel):
    description: str = ""
    subqueries: dict[str, int] = Field(default_factory=dict)


class PlanNode(_FrozenModel):
    index: int = Field(default=0, ge=0)
    kind: Kind = Kind.KIND_UNSPECIFIED
    display_name: str = ""
    child_links: list[ChildLink] = Field(default_factory=list)
    short_representation: Optional[ShortRepresentation] = None
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)
    execution_stats: Optional[dict[str, Any]] = None

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return _KIND_BY_NUMBER.get(value, Kind.KIND_UNSPECIFIED)
        if value in (None, "", "UNSPECIFIED"):
            return Kind.KIND_UNSPECIFIED
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def _drop_null_metadata(cls, value):
        # protobuf Struct null values carry no information for a title
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if v is not None}
        return value

    def metadata_string(self, key: str) -> Optional[str]:
        """Return metadata[key] if it is a string, None if absent or structured."""
        value = self.metadata.get(key)
        return value if isinstance(value, str) else None

    def execution_summary(self) -> Optional[dict[str, Any]]:
        if not self.execution_stats:
            return None
        summary = self.execution_stats.get("execution_summary")
        return summary if isinstance(summary, dict) else None

    @property
    def description(self) -> str:
        if self.short_representation is None:
            return ""
        return self.short_representation.description


def render_metadata_value(value: MetadataValue) -> str:
    """Render a metadata value for display; structured values become compact JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class QueryPlan(_FrozenModel):
    plan_nodes: list[PlanNode] = Field(default_factory=list)


class ResultSetStats(_FrozenModel):
    query_plan: Optional[QueryPlan] = None
    query_stats: dict[str, Any] = Field(default_factory=dict)
    row_count_exact: Optional[int] = None
    row_count_lower_bound: Optional[int] = None

    def query_stat_string(self, key: str) -> str:
        """Return a string query statistic, or "" when absent or not a string."""
        value = self.query_stats.get(key)
        return value if isinstance(value, str) else ""

    @classmethod
    def from_response(cls, payload: dict) -> "ResultSetStats":
        """
        Build stats from either a bare ResultSetStats payload or a
        (Partial)ResultSet payload carrying them under "stats".
        """
        if "stats" in payload and isinstance(payload["stats"], dict):
            payload = payload["stats"]
        return cls.model_validate(payload)
