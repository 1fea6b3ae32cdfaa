"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.
Enumerations used as column values are stored as plain strings; the
`str`-based enums below are the closed sets the API accepts.
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy import Column, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class AreaName(str, Enum):
    UNSPECIFIED = "UNSPECIFIED"
    PSYCHOLOGY = "PSYCHOLOGY"
    PHYSIOTHERAPY = "PHYSIOTHERAPY"
    NUTRITION = "NUTRITION"
    NURSING = "NURSING"
    PSYCHOPEDAGOGY = "PSYCHOPEDAGOGY"
    PHYSICAL_EDUCATION = "PHYSICAL_EDUCATION"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


class QuestionType(str, Enum):
    TEXT = "TEXT"
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"


class MemberArea(SQLModel, table=True):
    """Link row between a `Member` and an `Area`."""
    member_id: uuid.UUID = Field(foreign_key='member.id', primary_key=True)
    area_id: int = Field(foreign_key='area.id', primary_key=True)


class Area(SQLModel, table=True):
    """A disciplinary domain (psychology, nutrition, ...)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True, nullable=False)
    members: List['Member'] = Relationship(back_populates='areas', link_model=MemberArea)


class Member(SQLModel, table=True):
    """A staff member of the organization.

    Fields:
    - `email`: unique login e-mail
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: one of `Role`
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    email: str = Field(index=True, nullable=False, unique=True)
    phone: Optional[str] = None
    password_hash: str
    avatar_url: Optional[str] = None
    role: str = Field(default=Role.MEMBER.value)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    areas: List[Area] = Relationship(back_populates='members', link_model=MemberArea)
    observations: List['Observation'] = Relationship(
        back_populates='member',
        sa_relationship_kwargs={'cascade': 'all, delete'},
    )


class Athlete(SQLModel, table=True):
    """An athlete followed by the multidisciplinary staff."""
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True)
    birth_date: date
    gender: str
    phone: Optional[str] = None
    email: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    threads: List['Thread'] = Relationship(
        back_populates='athlete',
        sa_relationship_kwargs={'cascade': 'all, delete'},
    )
    forms: List['AthleteForm'] = Relationship(
        back_populates='athlete',
        sa_relationship_kwargs={'cascade': 'all, delete'},
    )


class Thread(SQLModel, table=True):
    """The per-athlete, per-area conversation holding observations."""
    __table_args__ = (UniqueConstraint('athlete_id', 'area_id'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    athlete_id: uuid.UUID = Field(foreign_key='athlete.id', index=True)
    area_id: int = Field(foreign_key='area.id')
    created_at: datetime = Field(default_factory=utcnow)
    athlete: Optional[Athlete] = Relationship(back_populates='threads')
    area: Optional[Area] = Relationship()
    observations: List['Observation'] = Relationship(
        back_populates='thread',
        sa_relationship_kwargs={'cascade': 'all, delete'},
    )


class Observation(SQLModel, table=True):
    """A note written by a member inside a thread."""
    id: Optional[int] = Field(default=None, primary_key=True)
    thread_id: int = Field(foreign_key='thread.id', index=True)
    member_id: uuid.UUID = Field(foreign_key='member.id')
    content: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    thread: Optional[Thread] = Relationship(back_populates='observations')
    member: Optional[Member] = Relationship(back_populates='observations')


class Form(SQLModel, table=True):
    """A questionnaire template addressed by its `slug`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    slug: str = Field(index=True, unique=True, nullable=False)
    title: str
    description: Optional[str] = None
    sections: List['Section'] = Relationship(
        back_populates='form',
        sa_relationship_kwargs={'cascade': 'all, delete'},
    )


class Section(SQLModel, table=True):
    """An ordered group of questions inside a `Form`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    form_id: int = Field(foreign_key='form.id', index=True)
    title: str
    position: int = 0
    form: Optional[Form] = Relationship(back_populates='sections')
    questions: List['Question'] = Relationship(
        back_populates='section',
        sa_relationship_kwargs={'cascade': 'all, delete'},
    )


class Question(SQLModel, table=True):
    """A single question; `options` lists the choices for choice questions."""
    id: Optional[int] = Field(default=None, primary_key=True)
    section_id: int = Field(foreign_key='section.id', index=True)
    title: str
    type: str = Field(default=QuestionType.TEXT.value)
    options: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    position: int = 0
    section: Optional[Section] = Relationship(back_populates='questions')


class AthleteForm(SQLModel, table=True):
    """A form assigned to an athlete."""
    __table_args__ = (UniqueConstraint('athlete_id', 'form_id'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    athlete_id: uuid.UUID = Field(foreign_key='athlete.id', index=True)
    form_id: int = Field(foreign_key='form.id')
    created_at: datetime = Field(default_factory=utcnow)
    athlete: Optional[Athlete] = Relationship(back_populates='forms')
    form: Optional[Form] = Relationship()
    answer: Optional['Answer'] = Relationship(
        back_populates='athlete_form',
        sa_relationship_kwargs={'cascade': 'all, delete', 'uselist': False},
    )


class Answer(SQLModel, table=True):
    """Stored responses of an `AthleteForm`.

    `data` maps question id (as a string key) to a string or a list of
    strings; `observations` maps question id to a free-text remark.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    athlete_form_id: int = Field(foreign_key='athleteform.id', unique=True)
    data: Dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    observations: Dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow)
    athlete_form: Optional[AthleteForm] = Relationship(back_populates='answer')
