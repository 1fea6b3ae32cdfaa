"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (members,
areas, athletes, threads, observations, forms, answers). Repositories
return SQLModel objects. Methods that write only `add`/`flush`; the
calling service owns the transaction and commits once, so multi-row
writes (account creation with area links, member updates with area
diffs) land atomically.
"""

import uuid
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, select

from . import models


class MemberRepository:
    """Queries and writes for `Member` objects."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, member: models.Member) -> models.Member:
        """Stage a new member and flush to obtain defaults."""
        self.session.add(member)
        self.session.flush()
        return member

    def get(self, member_id: uuid.UUID) -> Optional[models.Member]:
        """Get a `Member` by primary key."""
        return self.session.get(models.Member, member_id)

    def get_by_email(self, email: str) -> Optional[models.Member]:
        """Return a `Member` by e-mail or `None` if not found."""
        stmt = select(models.Member).where(models.Member.email == email)
        return self.session.exec(stmt).first()

    def list_page(self, page_index: int, per_page: int, name: Optional[str] = None) -> Tuple[List[models.Member], int]:
        """Return one page of members ordered by name plus the total count."""
        stmt = select(models.Member)
        count_stmt = select(func.count()).select_from(models.Member)
        if name:
            pattern = f"%{name}%"
            stmt = stmt.where(models.Member.name.ilike(pattern))
            count_stmt = count_stmt.where(models.Member.name.ilike(pattern))
        stmt = stmt.order_by(models.Member.name).offset(page_index * per_page).limit(per_page)
        return self.session.exec(stmt).all(), self.session.exec(count_stmt).one()

    def delete(self, member: models.Member) -> None:
        self.session.delete(member)


class AreaRepository:
    """Lookups and get-or-create for `Area` rows."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_name(self, name: str) -> Optional[models.Area]:
        stmt = select(models.Area).where(models.Area.name == name)
        return self.session.exec(stmt).first()

    def list_by_names(self, names: Iterable[str]) -> List[models.Area]:
        """Return existing areas whose name is in `names`."""
        names = list(names)
        if not names:
            return []
        stmt = select(models.Area).where(models.Area.name.in_(names))
        return self.session.exec(stmt).all()

    def list_all(self) -> List[models.Area]:
        return self.session.exec(select(models.Area).order_by(models.Area.name)).all()

    def get_or_create_many(self, names: Iterable[str]) -> List[models.Area]:
        """Return areas for `names`, creating the ones that do not exist yet."""
        wanted = list(dict.fromkeys(names))
        existing = self.list_by_names(wanted)
        known = {a.name for a in existing}
        created = []
        for name in wanted:
            if name not in known:
                area = models.Area(name=name)
                self.session.add(area)
                created.append(area)
        if created:
            self.session.flush()
        return existing + created


class AthleteRepository:
    """Queries and writes for `Athlete` objects."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, athlete: models.Athlete) -> models.Athlete:
        self.session.add(athlete)
        self.session.flush()
        return athlete

    def get(self, athlete_id: uuid.UUID) -> Optional[models.Athlete]:
        return self.session.get(models.Athlete, athlete_id)

    def list_page(self, page_index: int, per_page: int, name: Optional[str] = None) -> Tuple[List[models.Athlete], int]:
        """Return one page of athletes ordered by name plus the total count."""
        stmt = select(models.Athlete)
        count_stmt = select(func.count()).select_from(models.Athlete)
        if name:
            pattern = f"%{name}%"
            stmt = stmt.where(models.Athlete.name.ilike(pattern))
            count_stmt = count_stmt.where(models.Athlete.name.ilike(pattern))
        stmt = stmt.order_by(models.Athlete.name).offset(page_index * per_page).limit(per_page)
        return self.session.exec(stmt).all(), self.session.exec(count_stmt).one()

    def delete(self, athlete: models.Athlete) -> None:
        self.session.delete(athlete)


class ThreadRepository:
    """Lookup and get-or-create for the (athlete, area) `Thread`."""
    def __init__(self, session: Session):
        self.session = session

    def find(self, athlete_id: uuid.UUID, area_id: int) -> Optional[models.Thread]:
        stmt = select(models.Thread).where(
            models.Thread.athlete_id == athlete_id,
            models.Thread.area_id == area_id
        )
        return self.session.exec(stmt).first()

    def get_or_create(self, athlete_id: uuid.UUID, area_id: int) -> models.Thread:
        """Return the thread for the pair, creating it on first use."""
        thread = self.find(athlete_id, area_id)
        if thread:
            return thread
        thread = models.Thread(athlete_id=athlete_id, area_id=area_id)
        self.session.add(thread)
        self.session.flush()
        return thread


class ObservationRepository:
    """Queries and writes for `Observation` objects."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, observation: models.Observation) -> models.Observation:
        self.session.add(observation)
        self.session.flush()
        return observation

    def get(self, observation_id: int) -> Optional[models.Observation]:
        return self.session.get(models.Observation, observation_id)

    def list_for_thread(self, thread_id: int) -> List[models.Observation]:
        """Observations of a thread, oldest first."""
        stmt = select(models.Observation).where(
            models.Observation.thread_id == thread_id
        ).order_by(models.Observation.created_at, models.Observation.id)
        return self.session.exec(stmt).all()

    def delete(self, observation: models.Observation) -> None:
        self.session.delete(observation)


class FormRepository:
    """Queries and writes for `Form` templates with sections and questions."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, form: models.Form) -> models.Form:
        self.session.add(form)
        self.session.flush()
        return form

    def get_by_slug(self, slug: str) -> Optional[models.Form]:
        stmt = select(models.Form).where(models.Form.slug == slug)
        return self.session.exec(stmt).first()

    def list_all(self) -> List[models.Form]:
        return self.session.exec(select(models.Form).order_by(models.Form.title)).all()

    def list_questions(self, form_id: int) -> List[models.Question]:
        """Every question of a form, in section then question order."""
        stmt = select(models.Question).join(models.Section).where(
            models.Section.form_id == form_id
        ).order_by(models.Section.position, models.Question.position)
        return self.session.exec(stmt).all()


class AthleteFormRepository:
    """Queries for forms assigned to athletes and their single `Answer`."""
    def __init__(self, session: Session):
        self.session = session

    def find(self, athlete_id: uuid.UUID, slug: str) -> Optional[models.AthleteForm]:
        """Return the assignment of the form `slug` to the athlete, if any."""
        stmt = select(models.AthleteForm).join(models.Form).where(
            models.AthleteForm.athlete_id == athlete_id,
            models.Form.slug == slug
        )
        return self.session.exec(stmt).first()

    def list_for_athlete(self, athlete_id: uuid.UUID) -> List[models.AthleteForm]:
        stmt = select(models.AthleteForm).where(
            models.AthleteForm.athlete_id == athlete_id
        ).order_by(models.AthleteForm.created_at, models.AthleteForm.id)
        return self.session.exec(stmt).all()

    def add(self, athlete_form: models.AthleteForm) -> models.AthleteForm:
        self.session.add(athlete_form)
        self.session.flush()
        return athlete_form

    def get_answer(self, athlete_form_id: int) -> Optional[models.Answer]:
        stmt = select(models.Answer).where(models.Answer.athlete_form_id == athlete_form_id)
        return self.session.exec(stmt).first()

    def save_answer(self, answer: models.Answer) -> models.Answer:
        self.session.add(answer)
        self.session.flush()
        return answer
