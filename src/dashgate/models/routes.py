from __future__ import annotations

from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def _strip_required(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


RequiredStr = Annotated[str, AfterValidator(_strip_required)]


class RenderParams(BaseModel):
    """Query parameters of a panel render request."""

    model_config = ConfigDict(populate_by_name=True)

    uid: RequiredStr = Field(max_length=256)
    panel_id: RequiredStr = Field(alias="panelId", max_length=64)
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    width: str | None = None
    height: str | None = None
    org_id: str | None = Field(default=None, alias="orgId")


class SnapshotInput(BaseModel):
    """JSON body of a snapshot creation request."""

    model_config = ConfigDict(populate_by_name=True)

    dashboard_uid: RequiredStr = Field(alias="dashboardUid", max_length=256)
    name: str | None = Field(default=None, max_length=512)


class QueryInput(BaseModel):
    """Query parameters of an instant or range metrics query."""

    q: RequiredStr
    start: str | None = None
    end: str | None = None
    step: str | None = None


class ResolveOutput(BaseModel):
    """Response body of the public-token and goto-key resolution routes."""

    model_config = ConfigDict(populate_by_name=True)

    source: str
    mapped_uid: str | None = Field(default=None, serialization_alias="mappedUid")
    location: str | None = None
    data: Any = None
    html_sample: str | None = Field(default=None, serialization_alias="htmlSample")
