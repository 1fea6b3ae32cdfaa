"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests.
"""

import uuid
from datetime import date, datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from .config import settings
from .models import AreaName, Gender, QuestionType, Role

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CreateAccountIn(BaseModel):
    """Payload for `POST /members`."""
    name: str = Field(min_length=1)
    email: str = Field(pattern=EMAIL_PATTERN)
    phone: str
    password: str = Field(default=settings.DEFAULT_MEMBER_PASSWORD, min_length=6)
    role: Role = Role.MEMBER
    areas: List[AreaName] = Field(default_factory=lambda: [AreaName.UNSPECIFIED])


class CreateAccountOut(BaseModel):
    member_id: uuid.UUID


class SessionIn(BaseModel):
    """Payload for the password login endpoint."""
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    token: str


class ChangeEmailIn(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6)


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


class AreaOut(BaseModel):
    id: int
    name: str


class MemberOut(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    phone: Optional[str] = None
    role: Role
    avatar_url: Optional[str] = None
    areas: List[str]
    created_at: datetime


class UpdateMemberIn(BaseModel):
    """Full replacement of a member's editable fields and areas."""
    name: str = Field(min_length=1)
    email: str = Field(pattern=EMAIL_PATTERN)
    phone: Optional[str]
    role: Role
    areas: List[AreaName]


class PageMeta(BaseModel):
    page_index: int
    per_page: int
    total_count: int


class MemberPage(BaseModel):
    members: List[MemberOut]
    meta: PageMeta


class AthleteIn(BaseModel):
    """Payload for creating or replacing an athlete."""
    name: str = Field(min_length=1)
    birth_date: date
    gender: Gender
    phone: Optional[str] = None
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    is_active: bool = True


class AthleteOut(BaseModel):
    id: uuid.UUID
    name: str
    birth_date: date
    gender: Gender
    phone: Optional[str] = None
    email: Optional[str] = None
    is_active: bool
    created_at: datetime


class AthletePage(BaseModel):
    athletes: List[AthleteOut]
    meta: PageMeta


class CreateAthleteOut(BaseModel):
    athlete_id: uuid.UUID


class ObservationIn(BaseModel):
    content: str = Field(min_length=1)


class ObservationAuthor(BaseModel):
    id: uuid.UUID
    name: str


class ObservationOut(BaseModel):
    id: int
    content: str
    author: ObservationAuthor
    created_at: datetime
    updated_at: datetime


class CreateObservationOut(BaseModel):
    observation_id: int


class QuestionIn(BaseModel):
    title: str = Field(min_length=1)
    type: QuestionType = QuestionType.TEXT
    options: List[str] = Field(default_factory=list)


class SectionIn(BaseModel):
    title: str = Field(min_length=1)
    questions: List[QuestionIn] = Field(default_factory=list)


class FormIn(BaseModel):
    """Payload for `POST /forms`; list order defines positions."""
    slug: str = Field(pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    title: str = Field(min_length=1)
    description: Optional[str] = None
    sections: List[SectionIn] = Field(default_factory=list)


class CreateFormOut(BaseModel):
    form_id: int


class FormSummaryOut(BaseModel):
    id: int
    slug: str
    title: str


class QuestionOut(BaseModel):
    id: int
    title: str
    type: QuestionType
    options: List[str]
    answer: Optional[Union[str, List[str]]] = None
    observation: Optional[str] = None


class SectionOut(BaseModel):
    id: int
    title: str
    questions: List[QuestionOut]


class FormOut(BaseModel):
    id: int
    slug: str
    title: str
    description: Optional[str] = None
    sections: List[SectionOut]


class AssignFormOut(BaseModel):
    athlete_form_id: int


class AnswerItemIn(BaseModel):
    """One question's answer in a form-answer update."""
    id: int
    answer: Union[str, List[str]]
    observation: Optional[str] = None


class FormAnswersIn(BaseModel):
    questions: List[AnswerItemIn]
