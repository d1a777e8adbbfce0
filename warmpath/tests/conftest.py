from __future__ import annotations

import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from warmpath.models import Base, ICPProfile, NetworkConnection, WorkHistoryEntry
from warmpath.schemas import ClassifierVerdict, Connection, ICPCriteria

# ---------------------------------------------------------------------------
# Fixtures: in-memory SQLite database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    eng = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session(engine):
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    sess = SessionLocal()
    try:
        yield sess
    finally:
        sess.close()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_connection(id: int, name: str, strength: int = 3, **kwargs) -> Connection:
    return Connection(id=id, company_name=name, relationship_strength=strength, **kwargs)


def make_icp(**kwargs) -> ICPCriteria:
    return ICPCriteria(**kwargs)


def verdict(id: int | str, score: int, *reasons: str) -> ClassifierVerdict:
    return ClassifierVerdict(id=str(id), score=score, reasons=list(reasons))


def add_connection(
    session: Session,
    user_id: str,
    name: str,
    strength: int = 3,
    contacts: list[dict] | None = None,
    **kwargs,
) -> NetworkConnection:
    row = NetworkConnection(
        user_id=user_id,
        company_name=name,
        relationship_strength=strength,
        contact_count=len(contacts or []),
        key_contacts_json=json.dumps(contacts or []),
        **kwargs,
    )
    session.add(row)
    session.flush()
    return row


def add_icp(session: Session, user_id: str, roles: list[str] | None = None, **kwargs) -> ICPProfile:
    row = ICPProfile(user_id=user_id, key_roles_json=json.dumps(roles or []), **kwargs)
    session.add(row)
    session.flush()
    return row


def add_job(session: Session, user_id: str, company: str) -> WorkHistoryEntry:
    row = WorkHistoryEntry(user_id=user_id, company_name=company)
    session.add(row)
    session.flush()
    return row

