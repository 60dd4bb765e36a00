from typing import Optional

from pydantic import BaseModel
from sqlalchemy import BigInteger, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


class Message(SQLModel, table=True):
    """Chat entry scoped to one submission. Append-only."""

    __tablename__ = "messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    submission_id: str = Field(index=True)
    sender_id: str
    sender_name: str
    sender_role: str
    content: str
    timestamp: int = Field(sa_column=Column(BigInteger, nullable=False, index=True))


class MessageCreate(BaseModel):
    content: str


class ReadReceipt(SQLModel, table=True):
    """Per-user, per-conversation read watermark."""

    __tablename__ = "read_receipts"
    __table_args__ = (UniqueConstraint("user_id", "submission_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    submission_id: str = Field(index=True)
    last_read: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
