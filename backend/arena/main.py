"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the Arena Park backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Domain errors raised by services
are translated into status codes by `errors.register_error_handlers`.

Endpoints implemented:
- POST /members, POST /sessions
- GET /profile, PATCH /account/change-email, PATCH /account/change-password
- GET /members, GET|PUT|DELETE /members/{member_id}
- GET /areas
- POST|GET /athletes, GET|PUT|DELETE /athletes/{athlete_id}
- GET|POST /athletes/{athlete_id}/areas/{area_name}/observations
- PUT|DELETE /athletes/{athlete_id}/areas/{area_name}/observations/{observation_id}
- POST|GET /forms, GET /forms/{slug}
- GET /athletes/{athlete_id}/forms, POST /athletes/{athlete_id}/forms/{slug}
- GET|PUT /athletes/{athlete_id}/forms/{slug}/answers
- GET /health
"""

import json
import logging
import time
import uuid
from typing import List, Optional

from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlmodel import Session

from . import models, repositories, schemas, services
from .auth import get_current_member, get_current_member_id
from .config import settings
from .database import create_db_and_tables, get_session
from .errors import TooManyRequestsError, register_error_handlers
from .utils.rate_limit import LoginRateLimiter

app = FastAPI(title="Arena Park API")
logger = logging.getLogger("arena.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)
_login_limiter = LoginRateLimiter(
    max_attempts=settings.LOGIN_RATE_LIMIT_PER_MIN,
    window_seconds=settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

register_error_handlers(app)
create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
                "client": request.client.host if request.client else "unknown",
            },
            ensure_ascii=True,
        ),
    )
    return response


def _no_content() -> Response:
    return Response(status_code=204)


# --- auth / account ---------------------------------------------------------

@app.post('/members', status_code=201, response_model=schemas.CreateAccountOut)
def create_account(payload: schemas.CreateAccountIn, db: Session = Depends(get_session)):
    """Create a member account.

    Missing areas are created on the fly and linked to the new member in
    the same transaction. A duplicate e-mail is rejected with 400.
    """
    member = services.AuthService(db).create_account(
        name=payload.name,
        email=payload.email,
        phone=payload.phone,
        password=payload.password,
        role=payload.role.value,
        areas=[a.value for a in payload.areas],
    )
    return {'member_id': member.id}


@app.post('/sessions', status_code=201, response_model=schemas.TokenOut)
def authenticate_with_password(payload: schemas.SessionIn, request: Request, db: Session = Depends(get_session)):
    """Authenticate with e-mail and password and return a signed JWT.

    The token carries `sub` (member id), `role` and `areas` and expires
    after `JWT_EXPIRE_DAYS` days.
    """
    key = f"{request.client.host if request.client else 'unknown'}:{payload.email.lower()}"
    allowed, retry_after = _login_limiter.hit(key)
    if not allowed:
        raise TooManyRequestsError(f"Too many login attempts; retry after {retry_after}s", retry_after)
    token = services.AuthService(db).authenticate(payload.email, payload.password)
    _login_limiter.reset(key)
    return {'token': token}


@app.get('/profile', response_model=schemas.MemberOut)
def get_profile(member: models.Member = Depends(get_current_member)):
    """Return the authenticated member."""
    return services.member_to_dict(member)


@app.patch('/account/change-email', status_code=204)
def change_email(payload: schemas.ChangeEmailIn, db: Session = Depends(get_session), member_id: uuid.UUID = Depends(get_current_member_id)):
    services.AuthService(db).change_email(member_id, payload.email, payload.password)
    return _no_content()


@app.patch('/account/change-password', status_code=204)
def change_password(payload: schemas.ChangePasswordIn, db: Session = Depends(get_session), member_id: uuid.UUID = Depends(get_current_member_id)):
    services.AuthService(db).change_password(member_id, payload.current_password, payload.new_password)
    return _no_content()


# --- members ----------------------------------------------------------------

@app.get('/members', response_model=schemas.MemberPage)
def list_members(
    page_index: int = Query(0, ge=0),
    name: Optional[str] = None,
    db: Session = Depends(get_session),
    member_id: uuid.UUID = Depends(get_current_member_id),
):
    """List members ten per page, optionally filtered by name."""
    return services.MemberService(db).list_page(page_index, name)


@app.get('/members/{member_id}', response_model=schemas.MemberOut)
def get_member(member_id: uuid.UUID, db: Session = Depends(get_session), current_id: uuid.UUID = Depends(get_current_member_id)):
    return services.member_to_dict(services.MemberService(db).get(member_id))


@app.put('/members/{member_id}', status_code=204)
def update_member(
    member_id: uuid.UUID,
    payload: schemas.UpdateMemberIn,
    db: Session = Depends(get_session),
    current_id: uuid.UUID = Depends(get_current_member_id),
):
    """Replace a member's profile and diff its areas in one transaction."""
    services.MemberService(db).update(
        member_id,
        name=payload.name,
        email=payload.email,
        phone=payload.phone,
        role=payload.role.value,
        areas=[a.value for a in payload.areas],
    )
    return _no_content()


@app.delete('/members/{member_id}', status_code=204)
def delete_member(member_id: uuid.UUID, db: Session = Depends(get_session), actor: models.Member = Depends(get_current_member)):
    services.MemberService(db).delete(actor, member_id)
    return _no_content()


# --- areas ------------------------------------------------------------------

@app.get('/areas', response_model=List[schemas.AreaOut])
def list_areas(db: Session = Depends(get_session), member_id: uuid.UUID = Depends(get_current_member_id)):
    return [{'id': a.id, 'name': a.name} for a in repositories.AreaRepository(db).list_all()]


# --- athletes ---------------------------------------------------------------

@app.post('/athletes', status_code=201, response_model=schemas.CreateAthleteOut)
def create_athlete(payload: schemas.AthleteIn, db: Session = Depends(get_session), member_id: uuid.UUID = Depends(get_current_member_id)):
    athlete = services.AthleteService(db).create(
        name=payload.name,
        birth_date=payload.birth_date,
        gender=payload.gender.value,
        phone=payload.phone,
        email=payload.email,
        is_active=payload.is_active,
    )
    return {'athlete_id': athlete.id}


@app.get('/athletes', response_model=schemas.AthletePage)
def list_athletes(
    page_index: int = Query(0, ge=0),
    name: Optional[str] = None,
    db: Session = Depends(get_session),
    member_id: uuid.UUID = Depends(get_current_member_id),
):
    """List athletes ten per page, optionally filtered by name."""
    return services.AthleteService(db).list_page(page_index, name)


@app.get('/athletes/{athlete_id}', response_model=schemas.AthleteOut)
def get_athlete(athlete_id: uuid.UUID, db: Session = Depends(get_session), member_id: uuid.UUID = Depends(get_current_member_id)):
    return services.athlete_to_dict(services.AthleteService(db).get(athlete_id))


@app.put('/athletes/{athlete_id}', status_code=204)
def update_athlete(
    athlete_id: uuid.UUID,
    payload: schemas.AthleteIn,
    db: Session = Depends(get_session),
    member_id: uuid.UUID = Depends(get_current_member_id),
):
    fields = payload.model_dump()
    fields['gender'] = payload.gender.value
    services.AthleteService(db).update(athlete_id, **fields)
    return _no_content()


@app.delete('/athletes/{athlete_id}', status_code=204)
def delete_athlete(athlete_id: uuid.UUID, db: Session = Depends(get_session), member_id: uuid.UUID = Depends(get_current_member_id)):
    """Delete an athlete together with its threads and forms."""
    services.AthleteService(db).delete(athlete_id)
    return _no_content()


# --- threads / observations -------------------------------------------------

@app.get('/athletes/{athlete_id}/areas/{area_name}/observations', response_model=List[schemas.ObservationOut])
def list_athlete_observations(
    athlete_id: uuid.UUID,
    area_name: models.AreaName,
    db: Session = Depends(get_session),
    member_id: uuid.UUID = Depends(get_current_member_id),
):
    """Observations of the athlete's thread for an area, oldest first."""
    return services.ObservationService(db).list_observations(athlete_id, area_name.value)


@app.post('/athletes/{athlete_id}/areas/{area_name}/observations', status_code=201, response_model=schemas.CreateObservationOut)
def create_athlete_observation(
    athlete_id: uuid.UUID,
    area_name: models.AreaName,
    payload: schemas.ObservationIn,
    db: Session = Depends(get_session),
    member_id: uuid.UUID = Depends(get_current_member_id),
):
    observation = services.ObservationService(db).create(athlete_id, area_name.value, member_id, payload.content)
    return {'observation_id': observation.id}


@app.put('/athletes/{athlete_id}/areas/{area_name}/observations/{observation_id}', status_code=204)
def update_athlete_observation(
    athlete_id: uuid.UUID,
    area_name: models.AreaName,
    observation_id: int,
    payload: schemas.ObservationIn,
    db: Session = Depends(get_session),
    member_id: uuid.UUID = Depends(get_current_member_id),
):
    """Update an observation; only its author may do so."""
    services.ObservationService(db).update(athlete_id, area_name.value, observation_id, member_id, payload.content)
    return _no_content()


@app.delete('/athletes/{athlete_id}/areas/{area_name}/observations/{observation_id}', status_code=204)
def remove_athlete_observation(
    athlete_id: uuid.UUID,
    area_name: models.AreaName,
    observation_id: int,
    db: Session = Depends(get_session),
    member_id: uuid.UUID = Depends(get_current_member_id),
):
    """Remove an observation; only its author may do so."""
    services.ObservationService(db).delete(athlete_id, area_name.value, observation_id, member_id)
    return _no_content()


# --- forms ------------------------------------------------------------------

@app.post('/forms', status_code=201, response_model=schemas.CreateFormOut)
def create_form(payload: schemas.FormIn, db: Session = Depends(get_session), actor: models.Member = Depends(get_current_member)):
    sections = [
        {
            'title': s.title,
            'questions': [{'title': q.title, 'type': q.type.value, 'options': q.options} for q in s.questions],
        }
        for s in payload.sections
    ]
    form = services.FormService(db).create_form(actor, payload.slug, payload.title, payload.description, sections)
    return {'form_id': form.id}


@app.get('/forms', response_model=List[schemas.FormSummaryOut])
def list_forms(db: Session = Depends(get_session), member_id: uuid.UUID = Depends(get_current_member_id)):
    return services.FormService(db).list_forms()


@app.get('/forms/{slug}', response_model=schemas.FormOut)
def get_form(slug: str, db: Session = Depends(get_session), member_id: uuid.UUID = Depends(get_current_member_id)):
    svc = services.FormService(db)
    return svc.describe(svc.get_form(slug))


@app.get('/athletes/{athlete_id}/forms', response_model=List[schemas.FormSummaryOut])
def list_athlete_forms(athlete_id: uuid.UUID, db: Session = Depends(get_session), member_id: uuid.UUID = Depends(get_current_member_id)):
    return services.FormService(db).list_for_athlete(athlete_id)


@app.post('/athletes/{athlete_id}/forms/{slug}', status_code=201, response_model=schemas.AssignFormOut)
def assign_athlete_form(
    athlete_id: uuid.UUID,
    slug: str,
    db: Session = Depends(get_session),
    member_id: uuid.UUID = Depends(get_current_member_id),
):
    """Assign a form to an athlete (idempotent)."""
    athlete_form = services.FormService(db).assign(athlete_id, slug)
    return {'athlete_form_id': athlete_form.id}


@app.get('/athletes/{athlete_id}/forms/{slug}/answers', response_model=schemas.FormOut)
def get_form_answers(
    athlete_id: uuid.UUID,
    slug: str,
    db: Session = Depends(get_session),
    member_id: uuid.UUID = Depends(get_current_member_id),
):
    return services.FormService(db).get_answers(athlete_id, slug)


@app.put('/athletes/{athlete_id}/forms/{slug}/answers', status_code=204)
def update_form_answer(
    athlete_id: uuid.UUID,
    slug: str,
    payload: schemas.FormAnswersIn,
    db: Session = Depends(get_session),
    member_id: uuid.UUID = Depends(get_current_member_id),
):
    """Merge answers for an athlete's form, keyed by question id."""
    services.FormService(db).update_answers(athlete_id, slug, [q.model_dump() for q in payload.questions])
    return _no_content()


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
