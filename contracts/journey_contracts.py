"""Journey circle entity contracts.

Problems, solutions, offers and brain content are tagged variants (``kind``)
so the data store can dispatch on them and they survive a JSON round trip.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Literal, Optional
from urllib.parse import urlparse
from enum import Enum


def is_absolute_url(value: str) -> bool:
    """True if value is a well-formed absolute http(s) URL."""
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and " " not in parsed.netloc


class BrainContentType(str, Enum):
    """Source material types accepted as brain content."""
    URL = "url"
    TEXT = "text"
    FILE = "file"


class CircleStatus(str, Enum):
    """Lifecycle status of a journey circle."""
    INCOMPLETE = "incomplete"
    COMPLETE = "complete"


class BrainContentItem(BaseModel):
    """Raw source material used as input for AI generation."""
    kind: Literal["brain_content"] = "brain_content"
    id: Optional[int] = None
    type: BrainContentType
    value: str = Field(..., min_length=1)
    title: str = Field(default="", description="Generated or user supplied title")

    @model_validator(mode="after")
    def check_url_format(self) -> "BrainContentItem":
        if self.type == BrainContentType.URL and not is_absolute_url(self.value):
            raise ValueError(f"Brain content URL is not a well-formed absolute URL: {self.value!r}")
        return self


class ServiceArea(BaseModel):
    """A client's service area; owns at most one journey circle."""
    id: int
    client_id: Optional[int] = None
    title: str = Field(..., min_length=1)


class JourneyCircle(BaseModel):
    """Root of the aggregate being authored.

    ``id`` and ``service_area_id`` stay ``None`` until the step 2 commit.
    """
    id: Optional[int] = None
    service_area_id: Optional[int] = None
    client_id: Optional[int] = None
    industries: List[int] = Field(default_factory=list)
    brain_content: List[BrainContentItem] = Field(default_factory=list)
    primary_problem_id: Optional[int] = None
    status: CircleStatus = CircleStatus.INCOMPLETE


class Problem(BaseModel):
    """A problem on the outer ring."""
    kind: Literal["problem"] = "problem"
    id: Optional[int] = None
    title: str = Field(..., min_length=1)
    description: str = ""
    position: Optional[int] = Field(None, ge=0, description="0-based ring position")
    is_primary: bool = False


class Solution(BaseModel):
    """The single solution answering one problem."""
    kind: Literal["solution"] = "solution"
    id: Optional[int] = None
    problem_id: Optional[int] = None
    title: str = Field(..., min_length=1)
    description: str = ""


class Offer(BaseModel):
    """A call-to-action mapped to a solution."""
    kind: Literal["offer"] = "offer"
    id: Optional[int] = None
    solution_id: Optional[int] = None
    title: str = Field(..., min_length=1)
    url: str
    description: str = ""

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        value = value.strip()
        if not is_absolute_url(value):
            raise ValueError(f"Offer URL is not a well-formed absolute URL: {value!r}")
        return value


class TitleSuggestion(BaseModel):
    """An AI-proposed title that has not been confirmed yet."""
    title: str = Field(..., min_length=1)
    description: str = ""
