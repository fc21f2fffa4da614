"""Contracts for AI-generated content: asset drafts and generation output."""

from pydantic import BaseModel, Field
from typing import List, Literal, Optional, Dict, Any
from enum import Enum


class AssetState(str, Enum):
    """Lifecycle of an AI-generated asset.

    Declaration order is the progression order; see ``rank``.
    """
    NONE = "none"
    OUTLINE_PENDING = "outline_pending"
    OUTLINE_READY = "outline_ready"
    CONTENT_PENDING = "content_pending"
    CONTENT_READY = "content_ready"
    APPROVED = "approved"
    PUBLISHED = "published"

    @property
    def rank(self) -> int:
        return list(AssetState).index(self)

    @property
    def is_pending(self) -> bool:
        return self in (AssetState.OUTLINE_PENDING, AssetState.CONTENT_PENDING)


class AssetFocus(str, Enum):
    """Whether the asset speaks to the problem or to its solution."""
    PROBLEM = "problem"
    SOLUTION = "solution"


class AssetType(str, Enum):
    """Content formats that can be generated."""
    ARTICLE = "article"
    LINKEDIN = "linkedin"
    INFOGRAPHIC = "infographic"
    PRESENTATION = "presentation"


class AssetDraft(BaseModel):
    """Tracks generated content for one problem (and optionally its solution)."""
    kind: Literal["asset"] = "asset"
    id: Optional[int] = None
    problem_id: Optional[int] = None
    solution_id: Optional[int] = None
    focus: AssetFocus = AssetFocus.PROBLEM
    asset_type: AssetType = AssetType.ARTICLE
    state: AssetState = AssetState.NONE
    outline: Optional[str] = None
    content: Optional[str] = None
    outline_approved: bool = False
    published_url: Optional[str] = None

    def is_at_least(self, state: AssetState) -> bool:
        return self.state.rank >= state.rank


class GenerationKind(str, Enum):
    """Kinds of requests sent to the content-generation service."""
    PROBLEM_TITLES = "problem_titles"
    SOLUTION_TITLES = "solution_titles"
    OUTLINE = "outline"
    CONTENT = "content"


class TitleList(BaseModel):
    """Generation output for title suggestions."""
    titles: List[str] = Field(..., min_length=1)


class OutlineOutput(BaseModel):
    """Generation output for an asset outline."""
    title: Optional[str] = None
    outline: str = Field(..., min_length=1)


class ContentOutput(BaseModel):
    """Generation output for full asset content."""
    title: Optional[str] = None
    content: str = Field(..., min_length=1)


class Draft(BaseModel):
    """Structured result from the content-generation service."""
    kind: GenerationKind
    titles: List[str] = Field(default_factory=list)
    title: Optional[str] = None
    outline: Optional[str] = None
    content: Optional[str] = None
    model: Optional[str] = None
    cached: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)
