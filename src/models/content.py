"""Content-source models: spaces, page references and fetched page content.

These are transient -- fetched per ingestion run and never persisted by
the fragment store, which only keeps the page identifier.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Space(BaseModel):
    """A top-level wiki space."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(description="Space key used in content queries.")
    name: str = Field(description="Human-readable space name.")
    type: str = Field(default="global", description="Space type reported by the wiki.")
    description: str = Field(default="", description="Plain-text space description.")


class PageRef(BaseModel):
    """A page in a space tree, without its body."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Page identifier in the wiki.")
    title: str = Field(default="", description="Page title.")
    has_children: bool = Field(default=False, description="True when the page has child pages.")
    space_key: str | None = Field(default=None, description="Key of the owning space, if known.")


class PageContent(BaseModel):
    """A fetched page: the Document an ingestion run works on."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Page identifier; becomes the fragment document_id.")
    title: str = Field(default="", description="Page title used in the provenance header.")
    html: str = Field(default="", description="Rendered page body with absolute URLs.")
    url: str = Field(default="", description="Canonical page URL.")
    last_modified: str | None = Field(default=None, description="Last modification timestamp.")
    version: int | None = Field(default=None, description="Page version number.")
    space_key: str | None = Field(default=None)
    space_name: str | None = Field(default=None)
