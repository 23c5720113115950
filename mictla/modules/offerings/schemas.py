from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from mictla.core.ids import new_id
from mictla.core.wire import WireModel, utcnow
from mictla.modules.memorials.schemas import Position

OfferingType = Literal[
    "cempasuchil",
    "pan_de_muerto",
    "agua",
    "sal",
    "foto",
    "vela",
    "incienso",
    "comida_favorita",
]


class VirtualOffering(WireModel):
    id: str = Field(default_factory=lambda: new_id("offering"))
    type: OfferingType
    position: Position
    memorial_id: Optional[str] = None
    placed_by: Optional[str] = None
    message: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class OfferingsListOut(WireModel):
    items: List[VirtualOffering]
    total: int
