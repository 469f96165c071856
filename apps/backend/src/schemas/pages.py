"""Schemas for reading and publishing site pages."""

from pydantic import BaseModel, ConfigDict, Field


class PageSource(BaseModel):
    """Current source of one published page."""

    html: str
    path: str = Field(..., description="Site path as requested, e.g. /recipes")
    file_path: str = Field(..., description="Repository path the site path maps to")
    sha: str | None = None


class DeployRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    html: str = Field(..., min_length=1)
    path: str = Field(default="/", description="Site path to publish under")
    filename: str = Field(
        default="index.html", min_length=1, pattern=r"^[A-Za-z0-9._-]+\.html$"
    )


class DeployResult(BaseModel):
    path: str
    commit_url: str | None = None
    message: str


class SiteMap(BaseModel):
    files: list[str] = Field(default_factory=list)
