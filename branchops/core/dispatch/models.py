from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DispatchStatus(str, Enum):
    PENDING = "pending"
    PACKING = "packing"
    DISPATCHED = "dispatched"
    RECEIVING = "receiving"
    COMPLETED = "completed"


class ItemIssue(str, Enum):
    MISSING = "missing"
    DAMAGED = "damaged"
    PARTIAL = "partial"
    SHORTAGE = "shortage"


class WorkflowMode(str, Enum):
    PACKING = "packing"
    RECEIVING = "receiving"


def mode_for(status: DispatchStatus) -> WorkflowMode:
    """Pending and packing branches are worked by the kitchen; the rest by the branch."""
    if status in (DispatchStatus.PENDING, DispatchStatus.PACKING):
        return WorkflowMode.PACKING
    return WorkflowMode.RECEIVING


LATE_ITEM_STATUSES = {DispatchStatus.PENDING, DispatchStatus.PACKING}


@dataclass
class ParsedItem:
    name: str
    quantity: float
    unit: str


@dataclass
class ParsedBranch:
    branch_slug: str
    branch_name: str
    items: List[ParsedItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "branchSlug": self.branch_slug,
            "branchName": self.branch_name,
            "items": [{"name": i.name, "quantity": i.quantity, "unit": i.unit} for i in self.items],
        }


# ------------------------------------------------------------
# Request bodies (camelCase on the wire)
# ------------------------------------------------------------
class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class NewItem(_Body):
    id: Optional[str] = None
    name: str
    ordered_qty: float = 0
    quantity: Optional[float] = None
    unit: str = "KG"
    notes: str = ""


class NewBranchDispatch(_Body):
    branch_slug: str
    branch_name: str = ""
    items: List[NewItem] = Field(default_factory=list)


class CreateDispatchRequest(_Body):
    id: Optional[str] = None
    delivery_date: Optional[str] = None
    created_by: Optional[str] = None
    branch_dispatches: List[NewBranchDispatch] = Field(default_factory=list)
    branches: List[NewBranchDispatch] = Field(default_factory=list)


class LateItemBranch(_Body):
    branch_slug: str
    quantity: float


class AddLateItemRequest(_Body):
    item_name: str = ""
    unit: str = ""
    reason: Optional[str] = None
    branches: List[LateItemBranch] = Field(default_factory=list)
