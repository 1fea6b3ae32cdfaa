"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories.
Services are intentionally thin: they perform validation, execute domain
logic, persist aggregates via repositories and commit once per operation.
Failures are raised as `arena.errors` domain errors which the API layer
maps onto HTTP status codes.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import jwt
from passlib.context import CryptContext
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .errors import BadRequestError, NotFoundError, UnauthorizedError

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
PER_PAGE = 10

logger = logging.getLogger("arena.services")


def member_to_dict(member: models.Member) -> dict:
    return {
        'id': member.id,
        'name': member.name,
        'email': member.email,
        'phone': member.phone,
        'role': member.role,
        'avatar_url': member.avatar_url,
        'areas': sorted(a.name for a in member.areas),
        'created_at': member.created_at,
    }


def athlete_to_dict(athlete: models.Athlete) -> dict:
    return {
        'id': athlete.id,
        'name': athlete.name,
        'birth_date': athlete.birth_date,
        'gender': athlete.gender,
        'phone': athlete.phone,
        'email': athlete.email,
        'is_active': athlete.is_active,
        'created_at': athlete.created_at,
    }


def create_token(member: models.Member) -> str:
    """Sign a JWT carrying the member id, role and area names."""
    expire = datetime.now(timezone.utc) + timedelta(days=settings.JWT_EXPIRE_DAYS)
    payload = {
        "sub": str(member.id),
        "role": member.role,
        "areas": sorted(a.name for a in member.areas),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class AuthService:
    """Account creation, password authentication and credential changes."""
    def __init__(self, session: Session):
        self.session = session
        self.member_repo = repositories.MemberRepository(session)
        self.area_repo = repositories.AreaRepository(session)

    def create_account(self, name: str, email: str, phone: str, password: str, role: str, areas: List[str]) -> models.Member:
        """Create a member with a hashed password and link its areas.

        Areas that do not exist yet are created. The member and its area
        links are committed together.
        """
        if self.member_repo.get_by_email(email):
            raise BadRequestError("User with same e-mail already exists.")
        member = models.Member(
            name=name,
            email=email,
            phone=phone,
            role=role,
            password_hash=PWD_CTX.hash(password),
        )
        member.areas = self.area_repo.get_or_create_many(areas)
        self.member_repo.add(member)
        self.session.commit()
        self.session.refresh(member)
        logger.info("member created id=%s role=%s areas=%s", member.id, member.role, ",".join(areas))
        return member

    def authenticate(self, email: str, password: str) -> str:
        """Verify credentials and return a signed JWT token."""
        member = self.member_repo.get_by_email(email)
        if not member:
            raise BadRequestError("Invalid credentials.")
        if not PWD_CTX.verify(password, member.password_hash):
            raise BadRequestError("Invalid credentials.")
        return create_token(member)

    def change_email(self, member_id: uuid.UUID, email: str, password: str) -> None:
        """Move the member to a new e-mail after checking the password.

        An e-mail already in use (by anyone, the caller included) is a
        silent no-op so the endpoint does not reveal registered addresses.
        """
        if self.member_repo.get_by_email(email):
            return
        member = self.member_repo.get(member_id)
        if not member:
            raise NotFoundError("User not found")
        if not PWD_CTX.verify(password, member.password_hash):
            raise BadRequestError("Invalid credentials")
        member.email = email
        member.updated_at = models.utcnow()
        self.session.add(member)
        self.session.commit()

    def change_password(self, member_id: uuid.UUID, current_password: str, new_password: str) -> None:
        member = self.member_repo.get(member_id)
        if not member:
            raise NotFoundError("User not found")
        if not PWD_CTX.verify(current_password, member.password_hash):
            raise BadRequestError("Invalid credentials")
        member.password_hash = PWD_CTX.hash(new_password)
        member.updated_at = models.utcnow()
        self.session.add(member)
        self.session.commit()


class MemberService:
    """Listing, updating and removing members."""
    def __init__(self, session: Session):
        self.session = session
        self.member_repo = repositories.MemberRepository(session)
        self.area_repo = repositories.AreaRepository(session)

    def list_page(self, page_index: int, name: Optional[str] = None) -> dict:
        members, total = self.member_repo.list_page(page_index, PER_PAGE, name)
        return {
            'members': [member_to_dict(m) for m in members],
            'meta': {'page_index': page_index, 'per_page': PER_PAGE, 'total_count': total},
        }

    def get(self, member_id: uuid.UUID) -> models.Member:
        member = self.member_repo.get(member_id)
        if not member:
            raise NotFoundError("Member not found")
        return member

    def update(self, member_id: uuid.UUID, name: str, email: str, phone: Optional[str], role: str, areas: List[str]) -> None:
        """Replace the member's fields and diff its area links.

        Links to areas absent from `areas` are removed and new ones added;
        names without an `Area` row are ignored. Everything is committed
        in one transaction.
        """
        member = self.get(member_id)
        other = self.member_repo.get_by_email(email)
        if other and other.id != member.id:
            raise BadRequestError("User with same e-mail already exists.")
        member.name = name
        member.email = email
        member.phone = phone
        member.role = role
        member.updated_at = models.utcnow()

        wanted = {a.id: a for a in self.area_repo.list_by_names(areas)}
        current = {a.id for a in member.areas}
        to_add = [area for area_id, area in wanted.items() if area_id not in current]
        to_remove = [a for a in member.areas if a.id not in wanted]
        for area in to_remove:
            member.areas.remove(area)
        member.areas.extend(to_add)
        self.session.add(member)
        self.session.commit()
        logger.info(
            "member updated id=%s areas_added=%d areas_removed=%d",
            member.id, len(to_add), len(to_remove),
        )

    def delete(self, actor: models.Member, member_id: uuid.UUID) -> None:
        """Delete a member; only admins may do it, and never on themselves."""
        if actor.role != models.Role.ADMIN.value:
            raise UnauthorizedError("Only administrators can remove members")
        if actor.id == member_id:
            raise BadRequestError("You cannot remove your own account")
        member = self.get(member_id)
        self.member_repo.delete(member)
        self.session.commit()
        logger.info("member deleted id=%s by=%s", member_id, actor.id)


class AthleteService:
    """CRUD operations on athletes."""
    def __init__(self, session: Session):
        self.session = session
        self.athlete_repo = repositories.AthleteRepository(session)

    def create(self, name: str, birth_date, gender: str, phone: Optional[str], email: Optional[str], is_active: bool = True) -> models.Athlete:
        athlete = models.Athlete(
            name=name, birth_date=birth_date, gender=gender,
            phone=phone, email=email, is_active=is_active,
        )
        self.athlete_repo.add(athlete)
        self.session.commit()
        self.session.refresh(athlete)
        return athlete

    def list_page(self, page_index: int, name: Optional[str] = None) -> dict:
        athletes, total = self.athlete_repo.list_page(page_index, PER_PAGE, name)
        return {
            'athletes': [athlete_to_dict(a) for a in athletes],
            'meta': {'page_index': page_index, 'per_page': PER_PAGE, 'total_count': total},
        }

    def get(self, athlete_id: uuid.UUID) -> models.Athlete:
        athlete = self.athlete_repo.get(athlete_id)
        if not athlete:
            raise NotFoundError("Athlete not found")
        return athlete

    def update(self, athlete_id: uuid.UUID, **fields) -> None:
        athlete = self.get(athlete_id)
        for key, value in fields.items():
            setattr(athlete, key, value)
        athlete.updated_at = models.utcnow()
        self.session.add(athlete)
        self.session.commit()

    def delete(self, athlete_id: uuid.UUID) -> None:
        """Delete an athlete with its threads, observations and forms."""
        athlete = self.get(athlete_id)
        self.athlete_repo.delete(athlete)
        self.session.commit()
        logger.info("athlete deleted id=%s", athlete_id)


class ObservationService:
    """Observations inside the (athlete, area) thread."""
    def __init__(self, session: Session):
        self.session = session
        self.athlete_repo = repositories.AthleteRepository(session)
        self.area_repo = repositories.AreaRepository(session)
        self.thread_repo = repositories.ThreadRepository(session)
        self.observation_repo = repositories.ObservationRepository(session)

    def _area(self, area_name: str) -> models.Area:
        area = self.area_repo.get_by_name(area_name)
        if not area:
            raise NotFoundError("Area not found")
        return area

    def _athlete(self, athlete_id: uuid.UUID) -> models.Athlete:
        athlete = self.athlete_repo.get(athlete_id)
        if not athlete:
            raise NotFoundError("Athlete not found")
        return athlete

    def _authored_observation(self, athlete_id: uuid.UUID, area_name: str, observation_id: int, member_id: uuid.UUID) -> models.Observation:
        """Resolve an observation through its thread and check authorship."""
        area = self._area(area_name)
        thread = self.thread_repo.find(athlete_id, area.id)
        if not thread:
            raise NotFoundError("Thread not found for the specified area and athlete")
        observation = self.observation_repo.get(observation_id)
        if not observation or observation.thread_id != thread.id:
            raise NotFoundError("Observation not found for the specified thread and athlete")
        if observation.member_id != member_id:
            raise UnauthorizedError("You are not the author of this observation")
        return observation

    def list_observations(self, athlete_id: uuid.UUID, area_name: str) -> List[dict]:
        self._athlete(athlete_id)
        area = self._area(area_name)
        thread = self.thread_repo.find(athlete_id, area.id)
        if not thread:
            return []
        return [
            {
                'id': o.id,
                'content': o.content,
                'author': {'id': o.member.id, 'name': o.member.name},
                'created_at': o.created_at,
                'updated_at': o.updated_at,
            }
            for o in self.observation_repo.list_for_thread(thread.id)
        ]

    def create(self, athlete_id: uuid.UUID, area_name: str, member_id: uuid.UUID, content: str) -> models.Observation:
        """Append an observation, opening the area thread on first use."""
        self._athlete(athlete_id)
        area = self._area(area_name)
        thread = self.thread_repo.get_or_create(athlete_id, area.id)
        observation = self.observation_repo.add(
            models.Observation(thread_id=thread.id, member_id=member_id, content=content)
        )
        self.session.commit()
        self.session.refresh(observation)
        return observation

    def update(self, athlete_id: uuid.UUID, area_name: str, observation_id: int, member_id: uuid.UUID, content: str) -> None:
        observation = self._authored_observation(athlete_id, area_name, observation_id, member_id)
        observation.content = content
        observation.updated_at = models.utcnow()
        self.session.add(observation)
        self.session.commit()

    def delete(self, athlete_id: uuid.UUID, area_name: str, observation_id: int, member_id: uuid.UUID) -> None:
        observation = self._authored_observation(athlete_id, area_name, observation_id, member_id)
        self.observation_repo.delete(observation)
        self.session.commit()


def merge_answers(existing: Dict[str, object], incoming: Dict[str, object]) -> Dict[str, object]:
    """Merge `incoming` over `existing`; last write wins per question id."""
    merged = dict(existing or {})
    merged.update(incoming)
    return merged


class FormService:
    """Form templates, their assignment to athletes and stored answers."""
    def __init__(self, session: Session):
        self.session = session
        self.form_repo = repositories.FormRepository(session)
        self.athlete_form_repo = repositories.AthleteFormRepository(session)
        self.athlete_repo = repositories.AthleteRepository(session)

    def create_form(self, actor: models.Member, slug: str, title: str, description: Optional[str], sections: List[dict]) -> models.Form:
        """Create a form; sections and questions keep their list order."""
        if actor.role != models.Role.ADMIN.value:
            raise UnauthorizedError("Only administrators can create forms")
        if self.form_repo.get_by_slug(slug):
            raise BadRequestError("Form with same slug already exists.")
        form = models.Form(slug=slug, title=title, description=description)
        for s_pos, s in enumerate(sections):
            section = models.Section(title=s['title'], position=s_pos)
            for q_pos, q in enumerate(s.get('questions', [])):
                section.questions.append(models.Question(
                    title=q['title'], type=q['type'], options=list(q.get('options', [])), position=q_pos,
                ))
            form.sections.append(section)
        self.form_repo.add(form)
        self.session.commit()
        self.session.refresh(form)
        return form

    def list_forms(self) -> List[dict]:
        return [{'id': f.id, 'slug': f.slug, 'title': f.title} for f in self.form_repo.list_all()]

    def get_form(self, slug: str) -> models.Form:
        form = self.form_repo.get_by_slug(slug)
        if not form:
            raise NotFoundError("Form not found")
        return form

    def describe(self, form: models.Form, answer: Optional[models.Answer] = None) -> dict:
        """Serialize a form with ordered sections/questions and stored answers."""
        data = answer.data if answer else {}
        observations = answer.observations if answer else {}
        sections = []
        for section in sorted(form.sections, key=lambda s: (s.position, s.id)):
            questions = []
            for q in sorted(section.questions, key=lambda q: (q.position, q.id)):
                questions.append({
                    'id': q.id,
                    'title': q.title,
                    'type': q.type,
                    'options': q.options or [],
                    'answer': data.get(str(q.id)),
                    'observation': observations.get(str(q.id)),
                })
            sections.append({'id': section.id, 'title': section.title, 'questions': questions})
        return {
            'id': form.id,
            'slug': form.slug,
            'title': form.title,
            'description': form.description,
            'sections': sections,
        }

    def assign(self, athlete_id: uuid.UUID, slug: str) -> models.AthleteForm:
        """Assign a form to an athlete; an existing assignment is returned as is."""
        if not self.athlete_repo.get(athlete_id):
            raise NotFoundError("Athlete not found")
        form = self.get_form(slug)
        existing = self.athlete_form_repo.find(athlete_id, slug)
        if existing:
            return existing
        athlete_form = self.athlete_form_repo.add(models.AthleteForm(athlete_id=athlete_id, form_id=form.id))
        self.session.commit()
        self.session.refresh(athlete_form)
        return athlete_form

    def list_for_athlete(self, athlete_id: uuid.UUID) -> List[dict]:
        if not self.athlete_repo.get(athlete_id):
            raise NotFoundError("Athlete not found")
        return [
            {'id': af.form.id, 'slug': af.form.slug, 'title': af.form.title}
            for af in self.athlete_form_repo.list_for_athlete(athlete_id)
        ]

    def _athlete_form(self, athlete_id: uuid.UUID, slug: str) -> models.AthleteForm:
        athlete_form = self.athlete_form_repo.find(athlete_id, slug)
        if not athlete_form:
            raise NotFoundError("Form not found for athlete")
        return athlete_form

    def get_answers(self, athlete_id: uuid.UUID, slug: str) -> dict:
        athlete_form = self._athlete_form(athlete_id, slug)
        return self.describe(athlete_form.form, self.athlete_form_repo.get_answer(athlete_form.id))

    def update_answers(self, athlete_id: uuid.UUID, slug: str, questions: List[dict]) -> models.Answer:
        """Merge per-question answers into the athlete's stored `Answer`.

        Each item is `{id, answer, observation}`. Ids must belong to the
        form and multiple-choice questions take a list of strings while
        the others take a string; choice answers must be among the
        question's options. Values are stored under the question id
        as a string key; an item without `observation` clears the stored
        observation for that question.
        """
        athlete_form = self._athlete_form(athlete_id, slug)
        by_id = {q.id: q for q in self.form_repo.list_questions(athlete_form.form_id)}
        data = {}
        observations = {}
        for item in questions:
            question = by_id.get(item['id'])
            if not question:
                raise BadRequestError(f"Question {item['id']} does not belong to form {slug}")
            value = item['answer']
            if question.type == models.QuestionType.MULTIPLE_CHOICE.value:
                if not isinstance(value, list):
                    raise BadRequestError(f"Question {question.id} expects a list of answers")
            elif not isinstance(value, str):
                raise BadRequestError(f"Question {question.id} expects a single answer")
            if question.type != models.QuestionType.TEXT.value and question.options:
                chosen = value if isinstance(value, list) else [value]
                unknown = [c for c in chosen if c not in question.options]
                if unknown:
                    raise BadRequestError(f"Question {question.id} has no option {unknown[0]!r}")
            data[str(question.id)] = value
            observations[str(question.id)] = item.get('observation')

        answer = self.athlete_form_repo.get_answer(athlete_form.id)
        if not answer:
            answer = models.Answer(athlete_form_id=athlete_form.id)
        answer.data = merge_answers(answer.data, data)
        answer.observations = {
            k: v for k, v in merge_answers(answer.observations, observations).items() if v is not None
        }
        answer.updated_at = models.utcnow()
        self.athlete_form_repo.save_answer(answer)
        self.session.commit()
        return answer
