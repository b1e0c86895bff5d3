from __future__ import annotations
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

RECORD_VERSION = "ladder-v2"


class RomSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    neutral_y: float = Field(..., alias="neutralY", description="Arms-down baseline height")
    max_reach_left_y: float = Field(..., alias="maxReachLeftY", description="Highest left hand y seen")
    max_reach_right_y: float = Field(..., alias="maxReachRightY", description="Highest right hand y seen")


class CalibrationRecord(BaseModel):
    """Persisted ladder result. Serialized with camelCase keys for older readers."""
    model_config = ConfigDict(populate_by_name=True)

    t: int = Field(..., description="Capture time, epoch ms")
    mirror: bool = True
    count: int
    y_top: float = Field(..., alias="yTop")
    y_bottom: float = Field(..., alias="yBottom")
    left_x: float = Field(..., alias="leftX")
    right_x: float = Field(..., alias="rightX")
    hit_radius: float = Field(..., alias="hitRadius")
    left_index: Optional[int] = Field(None, alias="leftIndex", description="1-based rung")
    right_index: Optional[int] = Field(None, alias="rightIndex", description="1-based rung")
    left_y: float = Field(..., alias="leftY")
    right_y: float = Field(..., alias="rightY")
    rom: RomSummary
    version: str = RECORD_VERSION

    @property
    def complete(self) -> bool:
        return self.left_index is not None and self.right_index is not None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> "CalibrationRecord":
        return cls.model_validate_json(raw)
