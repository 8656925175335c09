"""
tests/test_repositories.py

Repository behaviour against an in-memory SQLite database.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401
from app.domain.matching import MatchCandidate
from app.repositories.ai_provider_config_repository import AIProviderConfigRepository
from app.repositories.counterparty_repository import CounterpartyRepository
from app.repositories.match_candidate_repository import MatchCandidateRepository
from app.repositories.obligation_repository import ObligationRepository
from app.repositories.subject_repository import SubjectRepository
from app.services.bulk_import_service import is_unique_violation
from app.services.matching_service import build_matching_service
from db.base import Base
from db.models import AIProviderConfig, Counterparty, MatchCandidateRecord, Obligation, Organization, Subject
from db.models.match_candidate import MatchType
from db.models.subject import SubjectRole


@pytest.fixture()
def session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT support.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(
        engine,
        tables=[
            Organization.__table__,
            Subject.__table__,
            Counterparty.__table__,
            Obligation.__table__,
            MatchCandidateRecord.__table__,
            AIProviderConfig.__table__,
        ],
    )
    with Session(engine) as db_session:
        yield db_session
    engine.dispose()


@pytest.fixture()
def organization(session):
    org = Organization(name="Cobranzas Sur")
    session.add(org)
    session.flush()
    return org


def _counterparty(session, organization, name, *, is_active=True):
    counterparty = Counterparty(organization_id=organization.id, name=name, is_active=is_active)
    session.add(counterparty)
    session.flush()
    return counterparty


def test_subject_create_and_lookup(session) -> None:
    repository = SubjectRepository(session)

    created = repository.create(identifier="12.345.678-5", full_name="Juan Perez", contact_email="juan@mail.cl")
    session.commit()

    found = repository.get_by_identifier("12.345.678-5")
    assert found is not None
    assert found.id == created.id
    assert found.role == SubjectRole.DEBTOR
    assert repository.get(created.id) is found
    assert repository.get_by_identifier("11.111.111-1") is None


def test_duplicate_subject_keeps_outer_transaction_usable(session) -> None:
    repository = SubjectRepository(session)
    repository.create(identifier="12.345.678-5", full_name="Juan Perez")
    session.commit()

    with pytest.raises(IntegrityError) as exc_info:
        repository.create(identifier="12.345.678-5", full_name="Otro Nombre")

    assert is_unique_violation(exc_info.value)
    assert repository.get_by_identifier("12.345.678-5").full_name == "Juan Perez"
    session.commit()


def test_update_contact_only_overwrites_supplied_values(session) -> None:
    repository = SubjectRepository(session)
    subject = repository.create(
        identifier="12.345.678-5",
        full_name="Juan Perez",
        contact_email="juan@mail.cl",
        contact_phone="+56912345678",
    )

    repository.update_contact(subject, full_name="Juan Perez Soto", contact_email=None, contact_phone="")

    assert subject.identifier == "12.345.678-5"
    assert subject.full_name == "Juan Perez Soto"
    assert subject.contact_email == "juan@mail.cl"
    assert subject.contact_phone == "+56912345678"


def test_list_unmatched_debtors(session, organization) -> None:
    subjects = SubjectRepository(session)
    unmatched = subjects.create(identifier="11.111.111-1", full_name="Ana Soto")
    matched = subjects.create(identifier="12.345.678-5", full_name="Juan Perez")
    creditor = subjects.create(identifier="7.654.321-6", full_name="Banco Estado")
    creditor.role = "creditor"
    counterparty = _counterparty(session, organization, "Juan Perez")
    MatchCandidateRepository(session).replace_for_subject(
        matched.id,
        [MatchCandidate(counterparty_id=counterparty.id, score=0.3, match_type=MatchType.NAME_HIGH, details={})],
    )
    session.commit()

    assert [subject.id for subject in subjects.list_unmatched_debtors()] == [unmatched.id]


def test_replace_candidates_is_idempotent(session, organization) -> None:
    subject = SubjectRepository(session).create(identifier="12.345.678-5", full_name="Juan Perez")
    first = _counterparty(session, organization, "Juan Perez")
    second = _counterparty(session, organization, "J Perez")
    repository = MatchCandidateRepository(session)
    candidates = [
        MatchCandidate(counterparty_id=second.id, score=0.45, match_type=MatchType.PARTIAL, details={"name_match": 0.5}),
        MatchCandidate(counterparty_id=first.id, score=0.9, match_type=MatchType.NAME_HIGH, details={"name_match": 1.0}),
    ]

    repository.replace_for_subject(subject.id, candidates)
    repository.replace_for_subject(subject.id, candidates)
    session.commit()

    stored = repository.list_for_subject(subject.id)
    assert [record.counterparty_id for record in stored] == [first.id, second.id]
    assert stored[1].details == {"name_match": 0.5}


def test_list_active_counterparties(session, organization) -> None:
    _counterparty(session, organization, "Zeta Cobranzas")
    _counterparty(session, organization, "Alfa Financiera")
    _counterparty(session, organization, "Cerrada SpA", is_active=False)
    session.commit()

    names = [counterparty.name for counterparty in CounterpartyRepository(session).list_active()]

    assert names == ["Alfa Financiera", "Zeta Cobranzas"]


def _obligation_values(subject_id, organization_id) -> dict:
    return {
        "subject_id": subject_id,
        "organization_id": organization_id,
        "counterparty_id": None,
        "original_amount": Decimal("1500.00"),
        "current_amount": Decimal("1500.00"),
        "due_date": date(2024, 12, 31),
        "status": "active",
        "counterparty_name": "Banco Estado",
        "category": "other",
    }


def test_obligation_insert_ignores_columns_missing_from_live_table(session, organization) -> None:
    subject = SubjectRepository(session).create(identifier="12.345.678-5", full_name="Juan Perez")
    repository = ObligationRepository(session)
    values = _obligation_values(subject.id, organization.id)
    values["region"] = "RM"

    obligation_id = repository.create(values)
    session.commit()

    stored = session.execute(select(Obligation).where(Obligation.id == obligation_id)).scalar_one()
    assert stored.subject_id == subject.id
    assert stored.due_date == date(2024, 12, 31)
    assert stored.counterparty_name == "Banco Estado"
    assert "region" not in repository.live_columns()


def test_obligation_insert_uses_evolved_columns_after_refresh(session, organization) -> None:
    subject = SubjectRepository(session).create(identifier="12.345.678-5", full_name="Juan Perez")
    repository = ObligationRepository(session)
    repository.live_columns()

    session.execute(text("ALTER TABLE obligations ADD COLUMN region VARCHAR(50)"))
    repository.refresh_schema()
    values = _obligation_values(subject.id, organization.id)
    values["region"] = "RM"

    obligation_id = repository.create(values)
    session.commit()

    region = session.execute(
        text("SELECT region FROM obligations WHERE id = :id"),
        {"id": obligation_id.hex},
    ).scalar_one()
    assert region == "RM"
    assert "region" in repository.live_columns()


def test_stored_credential_lookup(session) -> None:
    session.add(
        AIProviderConfig(
            provider="groq",
            api_key="stored-key",
            base_url="https://example.test/v1",
            models_json=["llama-3.1-8b-instant", " ", "mixtral-8x7b-32768"],
        )
    )
    session.add(AIProviderConfig(provider="openai", api_key="x", is_active=False))
    session.commit()
    repository = AIProviderConfigRepository(session)

    credential = repository.get_stored_credential(" GROQ ")

    assert credential.api_key == "stored-key"
    assert credential.models == ["llama-3.1-8b-instant", "mixtral-8x7b-32768"]
    assert repository.get_stored_credential("openai") is None
    assert repository.get_stored_credential("anthropic") is None


def test_obligation_ids_are_client_generated(session, organization) -> None:
    subject = SubjectRepository(session).create(identifier="12.345.678-5", full_name="Juan Perez")
    values = _obligation_values(subject.id, organization.id)
    values["id"] = uuid.UUID("aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee")

    obligation_id = ObligationRepository(session).create(values)

    assert obligation_id == values["id"]


def test_matching_pass_twice_skips_already_matched_subjects(session, organization) -> None:
    subjects = SubjectRepository(session)
    juan = subjects.create(identifier="12.345.678-5", full_name="Juan Perez")
    ana = subjects.create(identifier="11.111.111-1", full_name="Ana Soto")
    for subject in (juan, ana):
        session.add(
            Counterparty(organization_id=organization.id, name=subject.full_name, identifier=subject.identifier)
        )
    session.commit()

    def stored_candidates():
        rows = session.execute(select(MatchCandidateRecord)).scalars().all()
        return sorted((row.id, row.subject_id, row.counterparty_id, row.score, row.match_type) for row in rows)

    first = build_matching_service(session).match_all_unmatched()
    after_first = stored_candidates()
    second = build_matching_service(session).match_all_unmatched()

    assert first.subjects_processed == 2
    assert first.subjects_matched == 2
    assert {result.subject_id for result in first.results} == {juan.id, ana.id}
    assert len(after_first) == 2
    assert second.subjects_processed == 0
    assert second.subjects_matched == 0
    assert second.failures == []
    assert stored_candidates() == after_first
