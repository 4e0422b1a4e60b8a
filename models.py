"""Session data shared by the request shaper, the orchestrator and the views.

Field names serialize in camelCase so the page script reads the same keys
the structured-output schema asks the model for.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProjectType(str, Enum):
    RESIDENTIAL = "Residential"
    COMMERCIAL = "Commercial"
    MIXED_USE = "Mixed-Use"
    VILLA = "Villa"


class ArchitecturalStyle(str, Enum):
    MODERN = "Modern"
    MINIMALIST = "Minimalist"
    LUXURY = "Luxury"
    TRADITIONAL = "Traditional"
    ECO_FRIENDLY = "Eco-Friendly"
    INDUSTRIAL = "Industrial"


class BudgetRange(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


DEFAULT_MATERIALS = ["Glass", "Concrete", "Timber"]


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self):
        return self.model_dump(mode="json", by_alias=True)


class DesignPreferences(CamelModel):
    type: ProjectType = ProjectType.RESIDENTIAL
    style: ArchitecturalStyle = ArchitecturalStyle.MODERN
    floors: int = Field(default=2, ge=1)
    budget_range: BudgetRange = Field(default=BudgetRange.MEDIUM, alias="budgetRange")
    materials: List[str] = Field(default_factory=lambda: list(DEFAULT_MATERIALS))

    @field_validator("materials")
    @classmethod
    def _materials_not_empty(cls, value):
        cleaned = [m.strip() for m in value if m and m.strip()]
        if not cleaned:
            raise ValueError("materials must contain at least one entry")
        return cleaned


class Citation(CamelModel):
    title: str
    uri: str


class SiteDiscovery(CamelModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    analysis: str
    references: List[Citation] = Field(default_factory=list)


class Room(CamelModel):
    name: str = ""
    size: str = ""
    description: str = ""


class FloorPlan(CamelModel):
    rooms: List[Room] = Field(default_factory=list)
    total_area: str = Field(default="N/A", alias="totalArea")
    analysis: str = ""


class CostItem(CamelModel):
    item: str = ""
    cost: float = 0.0


class CostBreakdown(CamelModel):
    estimated_total: float = Field(default=0.0, alias="estimatedTotal")
    breakdown: List[CostItem] = Field(default_factory=list)


class Visualizations(CamelModel):
    exterior: str
    interior: str
    plan: str


class DesignVersion(CamelModel):
    id: str = Field(default_factory=lambda: new_id())
    name: str
    timestamp: str = Field(default_factory=lambda: utc_now())
    visualizations: Visualizations
    preferences: DesignPreferences


class ArchitecturalDesign(CamelModel):
    id: str = Field(default_factory=lambda: new_id())
    name: str
    description: str
    site_analysis: str = Field(alias="siteAnalysis")
    preferences: DesignPreferences
    floor_plan: FloorPlan = Field(alias="floorPlanJson")
    costs: CostBreakdown
    visualizations: Visualizations
    versions: List[DesignVersion] = Field(default_factory=list)
    created_at: str = Field(default_factory=lambda: utc_now(), alias="createdAt")

    def replace_exterior(self, exterior):
        """Swap the exterior image, keeping the previous set as a version."""
        self.versions.append(DesignVersion(
            name=self.name,
            visualizations=self.visualizations.model_copy(),
            preferences=self.preferences.model_copy(deep=True),
        ))
        self.visualizations = self.visualizations.model_copy(update={"exterior": exterior})


class ChatMessage(CamelModel):
    role: str
    content: str
    sources: Optional[List[str]] = None


def new_id():
    return uuid.uuid4().hex[:9]


def utc_now():
    return datetime.now(timezone.utc).isoformat()
