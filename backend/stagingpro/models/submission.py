from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, BigInteger, Column
from sqlmodel import Field, SQLModel


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    REVIEWING = "reviewing"
    COMPLETED = "completed"
    QUOTE_REQUEST = "quote_request"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    QUOTE_PENDING = "quote_pending"
    PAID = "paid"


class Submission(SQLModel, table=True):
    __tablename__ = "submissions"

    id: str = Field(primary_key=True, max_length=32)
    owner_id: str = Field(index=True)
    owner_email: Optional[str] = None
    plan: str = Field(foreign_key="plans.id", index=True)
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    data_url: str
    instructions: str = ""
    reference_images: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    assigned_editor_id: Optional[str] = Field(default=None, index=True)
    result_remove_url: Optional[str] = None
    result_add_url: Optional[str] = None
    revision_notes: Optional[str] = None
    status: str = Field(default=SubmissionStatus.PENDING.value, index=True)
    payment_status: str = Field(default=PaymentStatus.UNPAID.value, index=True)
    quoted_amount: Optional[int] = Field(default=None, sa_column=Column(BigInteger))
    stripe_session_id: Optional[str] = None
    timestamp: int = Field(sa_column=Column(BigInteger, nullable=False, index=True))


class ReferenceImage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    data_url: str
    name: Optional[str] = None


class SubmissionRead(BaseModel):
    """Wire shape of a submission (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    owner_id: str
    owner_email: Optional[str] = None
    plan: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    data_url: str
    instructions: str = ""
    reference_images: List[Dict[str, Any]] = []
    assigned_editor_id: Optional[str] = None
    result_remove_url: Optional[str] = None
    result_add_url: Optional[str] = None
    revision_notes: Optional[str] = None
    status: SubmissionStatus
    payment_status: PaymentStatus
    quoted_amount: Optional[int] = None
    timestamp: int
    estimated_delivery: Optional[str] = None


class OrderCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    plan: str
    image: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    instructions: str = ""
    analysis: Optional[str] = None
    reference_images: List[ReferenceImage] = []


def submission_to_public(sub: Submission, estimated_delivery: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    read = SubmissionRead.model_validate(sub)
    read.estimated_delivery = estimated_delivery
    data = read.model_dump(by_alias=True, mode="json")
    # extra keys are already in wire (camelCase) form
    data.update(extra)
    return data
