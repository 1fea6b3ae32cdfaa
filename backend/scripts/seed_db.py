"""CLI script to seed the backend DB with areas, an admin and a sample form.
Usage: python scripts/seed_db.py [--admin-email EMAIL]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `arena` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from arena.config import settings
from arena.database import engine, create_db_and_tables
from arena import models, repositories, services

ANAMNESIS_SECTIONS = [
    {
        'title': 'Health history',
        'questions': [
            {'title': 'Does the athlete take any continuous medication?', 'type': 'TEXT'},
            {'title': 'Known allergies', 'type': 'MULTIPLE_CHOICE', 'options': ['Food', 'Medication', 'Pollen', 'None']},
        ],
    },
    {
        'title': 'Training routine',
        'questions': [
            {'title': 'Training sessions per week', 'type': 'SINGLE_CHOICE', 'options': ['1-2', '3-4', '5+']},
            {'title': 'Main goal for the season', 'type': 'TEXT'},
        ],
    },
]


def main(admin_email: str = 'admin@arenapark.com'):
    """Create tables, every area, an ADMIN member and the anamnesis form.

    Existing rows are left untouched so the script can be re-run safely.
    """
    create_db_and_tables()
    with Session(engine) as session:
        areas = repositories.AreaRepository(session).get_or_create_many(a.value for a in models.AreaName)
        session.commit()
        print(f'Areas available: {len(areas)}')

        admin = repositories.MemberRepository(session).get_by_email(admin_email)
        if admin:
            print(f'Admin {admin_email} already exists')
        else:
            admin = services.AuthService(session).create_account(
                name='Administrator',
                email=admin_email,
                phone='',
                password=settings.DEFAULT_MEMBER_PASSWORD,
                role=models.Role.ADMIN.value,
                areas=[a.value for a in models.AreaName],
            )
            print(f'Created admin {admin_email} with the default password')

        if repositories.FormRepository(session).get_by_slug('anamnesis'):
            print('Form anamnesis already exists')
        else:
            services.FormService(session).create_form(
                admin, 'anamnesis', 'Anamnesis', 'Initial health and routine questionnaire', ANAMNESIS_SECTIONS,
            )
            print('Created form anamnesis')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--admin-email', default='admin@arenapark.com', help='E-mail of the admin account to create')
    args = parser.parse_args()
    main(admin_email=args.admin_email)
