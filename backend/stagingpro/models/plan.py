from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField
from sqlmodel import Field, SQLModel


class PlanType(str, Enum):
    FURNITURE_REMOVE = "furniture_remove"
    FURNITURE_ADD = "furniture_add"
    FURNITURE_BOTH = "furniture_both"
    FLOOR_PLAN_CG = "floor_plan_cg"


# Plans that deliver a removal result and a staged result
DUAL_DELIVERABLE_PLANS = {PlanType.FURNITURE_BOTH.value}
# Plans priced per order by staff instead of a fixed amount
QUOTE_PLANS = {PlanType.FLOOR_PLAN_CG.value}


class Plan(SQLModel, table=True):
    __tablename__ = "plans"

    id: str = Field(primary_key=True, max_length=64)
    title: str
    price: str = ""
    amount: int = 0
    number: str = ""
    description: str = ""
    is_visible: bool = Field(default=True)


class PlanPublic(BaseModel):
    """Plan as read and written by clients. Visibility is `isVisible` on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    price: str = ""
    amount: int = 0
    number: str = ""
    description: str = ""
    is_visible: bool = PydanticField(default=True, alias="isVisible")


class PlanUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    price: Optional[str] = None
    amount: Optional[int] = None
    number: Optional[str] = None
    description: Optional[str] = None
    is_visible: Optional[bool] = PydanticField(default=None, alias="isVisible")


def plan_to_public(plan: Plan) -> Dict[str, Any]:
    return {
        "id": plan.id,
        "title": plan.title,
        "price": plan.price,
        "amount": plan.amount,
        "number": plan.number,
        "description": plan.description,
        # rows written before the column existed read back as NULL
        "isVisible": plan.is_visible is not False,
    }


def plan_from_public(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Map a wire payload to column values. Unknown keys are dropped."""
    columns = {}
    for key in ("id", "title", "price", "amount", "number", "description"):
        if key in payload and payload[key] is not None:
            columns[key] = payload[key]
    if "isVisible" in payload and payload["isVisible"] is not None:
        columns["is_visible"] = bool(payload["isVisible"])
    elif "is_visible" in payload and payload["is_visible"] is not None:
        columns["is_visible"] = bool(payload["is_visible"])
    return columns


DEFAULT_PLANS = [
    dict(
        id=PlanType.FURNITURE_REMOVE.value,
        title="Furniture Removal",
        price="$ 35",
        amount=3500,
        number="01",
        description="Digitally clear existing furniture and clutter to reveal an empty, move-in ready space.",
    ),
    dict(
        id=PlanType.FURNITURE_ADD.value,
        title="Virtual Staging",
        price="$ 45",
        amount=4500,
        number="02",
        description="Furnish an empty room with curated, photo-real interior design.",
    ),
    dict(
        id=PlanType.FURNITURE_BOTH.value,
        title="Removal + Staging",
        price="$ 70",
        amount=7000,
        number="03",
        description="Clear the existing furniture, then restage the room. Both images are delivered.",
    ),
    dict(
        id=PlanType.FLOOR_PLAN_CG.value,
        title="3D Floor Plan CG",
        price="Quote",
        amount=0,
        number="04",
        description="Turn a 2D floor plan into a rendered 3D visualisation. Priced per project.",
    ),
]
