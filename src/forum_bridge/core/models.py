"""Pydantic request/response models for the knowledge-base fragment API.

Field names are snake_case in Python and camelCase on the wire; always
serialise with ``to_payload()`` so aliases and omitted fields are handled
consistently.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CreateFragmentRequest(BaseModel):
    """Body of ``POST /memory-fragments``."""

    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    workspace_id: str = Field(alias="workspaceId")
    fragment_type_id: str = Field(alias="fragmentTypeId")
    summary: str | None = None
    tags: list[str] | None = None
    repository: str | None = None

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class UpdateFragmentRequest(BaseModel):
    """Partial update for ``PATCH /memory-fragments/{fragmentId}``.

    Only fields that are set are sent; ``fragment_id`` is part of the URL,
    never of the body.
    """

    fragment_id: str = Field(alias="fragmentId", min_length=1)
    title: str | None = None
    content: str | None = None
    summary: str | None = None
    tags: list[str] | None = None
    fragment_type_id: str | None = Field(default=None, alias="fragmentTypeId")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(
            by_alias=True, exclude_none=True, exclude={"fragment_id"}
        )

    @property
    def changed_fields(self) -> list[str]:
        """Names of the fields this request will overwrite."""
        return sorted(self.to_payload().keys())


class FragmentCreated(BaseModel):
    """Subset of the create response the bridge relies on."""

    fragment_id: str = Field(alias="fragmentId", min_length=1)
    title: str | None = None
    workspace_id: str | None = Field(default=None, alias="workspaceId")
    tags: list[str] = []
    created_at: str | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore"
    )
