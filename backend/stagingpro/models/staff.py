from typing import Optional

from pydantic import BaseModel
from sqlalchemy import BigInteger, Column
from sqlmodel import Field, SQLModel


class Editor(SQLModel, table=True):
    __tablename__ = "editors"

    id: str = Field(primary_key=True, max_length=32)
    name: str = Field(index=True)
    email: Optional[str] = None
    specialty: str = ""


class EditorCreate(BaseModel):
    name: str
    specialty: str
    email: Optional[str] = None


class ArchiveProject(SQLModel, table=True):
    """Public showcase item. `category` mirrors a plan title; it is not a foreign key."""

    __tablename__ = "archive_projects"

    id: str = Field(primary_key=True, max_length=64)
    title: str
    category: str
    beforeurl: Optional[str] = None
    afterurl: str
    description: str = ""
    timestamp: int = Field(sa_column=Column(BigInteger, nullable=False, index=True))


class ArchiveProjectWrite(BaseModel):
    title: Optional[str] = None
    category: Optional[str] = None
    beforeurl: Optional[str] = None
    afterurl: Optional[str] = None
    description: str = ""
    # data URLs uploaded through the media store before the record is saved
    before_image: Optional[str] = None
    after_image: Optional[str] = None
