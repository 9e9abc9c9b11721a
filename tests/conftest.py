"""Pytest fixtures for gradepush tests.

Storage and extension tests run against an in-memory SQLite database built
from the table metadata. Each test gets a session inside an outer
transaction that is rolled back afterwards, so production code using
session.begin() works unchanged while tests stay isolated.

Usage:
    def test_apply(db_session: Session, mapping_factory, applier):
        mapping = mapping_factory(activity_type=ActivityType.Assign)
        with db_session.begin():
            applier.apply_raa(mapping, user.user_id, directive)
"""

from __future__ import annotations

import datetime
import os
import typing as t
from pathlib import Path

import pydantic as p
import pytest
import sqlalchemy
import sqlalchemy.event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import gradepush
import gradepush.lib.json as json
import gradepush.storage.activity as activity_store
import gradepush.storage.component as component_store
import gradepush.storage.mapping as mapping_store
import gradepush.storage.user as user_store
from gradepush.core import GradePushContainer, TimestampProvider
from gradepush.core.config import ExtensionSettings, QueueSettings
from gradepush.extension.applier import ExtensionApplier
from gradepush.model import Activity, ActivityType, ComponentGrade, DeploymentEnvironment, LmsUser, \
    MappingWithComponent, StudentRecord
from gradepush.storage.table import base

utc = datetime.timezone.utc

# a Monday in February, when Europe/London is on GMT
NOW = datetime.datetime(2025, 2, 10, 9, 0, tzinfo=utc)


@pytest.fixture(scope="session")
def engine() -> sqlalchemy.Engine:
    """In-memory SQLite engine shared by every connection, with working savepoints."""
    engine = sqlalchemy.create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        json_serializer=json.dumps,
        json_deserializer=json.loads,
    )

    # pysqlite manages transactions itself and breaks SAVEPOINT; take that over
    @sqlalchemy.event.listens_for(engine, "connect")
    def do_connect(dbapi_conn: t.Any, _: t.Any) -> None:
        dbapi_conn.isolation_level = None

    @sqlalchemy.event.listens_for(engine, "begin")
    def do_begin(conn: sqlalchemy.Connection) -> None:
        conn.exec_driver_sql("BEGIN")

    base.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="session")
def container(engine: sqlalchemy.Engine) -> t.Generator[GradePushContainer]:
    """Boot the DI container once for the test session, against config/ in the test environment."""
    ct = GradePushContainer()
    root = Path(os.path.dirname(gradepush.__file__)).parent

    GradePushContainer.boot(
        ct,
        debug=True,
        env=DeploymentEnvironment.Test,
        config_root=p.FileUrl(f"file://{root}/config"),
        override=(),
    )
    ct.storage().persistent().engine.override(engine)

    yield ct

    ct.storage().persistent().engine.reset_override()
    ct.shutdown_resources()


@pytest.fixture
def db_session(container: GradePushContainer) -> t.Generator[Session]:
    """Provide a database session wrapped in a transaction that is rolled back after the test.

    join_transaction_mode="create_savepoint" makes session.begin() open a
    savepoint, since the connection is already in a transaction.
    """
    engine = container.storage().persistent().engine()

    connection = engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        autobegin=False,
        join_transaction_mode="create_savepoint",
    )

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def utcnow() -> TimestampProvider:
    return lambda: NOW


@pytest.fixture
def settings() -> ExtensionSettings:
    return ExtensionSettings()


@pytest.fixture
def queue_settings() -> QueueSettings:
    return QueueSettings(
        raa={"url": "https://sqs.eu-west-2.amazonaws.com/000000000000/raa"},
        ec={"url": "https://sqs.eu-west-2.amazonaws.com/000000000000/ec"},
        wait_time_seconds=0,
    )


@pytest.fixture
def applier(db_session: Session, settings: ExtensionSettings, utcnow: TimestampProvider) -> ExtensionApplier:
    return ExtensionApplier(db_session, settings=settings, utcnow=utcnow)


@pytest.fixture
def component_factory(db_session: Session) -> t.Callable[..., ComponentGrade]:
    """Factory fixture for assessment components; returns an existing one with the same codes."""

    def create_component(
        map_code: str = "LAWS0024A6UF",
        mab_seq: str = "001",
        ast_code: str | None = "CW",
    ) -> ComponentGrade:
        with db_session.begin():
            found = component_store.find(map_code=map_code, mab_seq=mab_seq, session=db_session)
            if found:
                return found[0]
            return component_store.create(map_code=map_code, mab_seq=mab_seq, ast_code=ast_code, session=db_session)

    return create_component


@pytest.fixture
def activity_factory(db_session: Session) -> t.Callable[..., Activity]:
    """Factory fixture for activities; by default opened a week ago and closing at noon on 2025-02-17."""

    def create_activity(
        activity_type: ActivityType = ActivityType.Assign,
        course_id: int = 100,
        name: str = "Essay 1",
        open_time: datetime.datetime | None = NOW - datetime.timedelta(days=7),
        close_time: datetime.datetime | None = datetime.datetime(2025, 2, 17, 12, 0, tzinfo=utc),
        time_limit: int | None = None,
    ) -> Activity:
        with db_session.begin():
            return activity_store.create(
                course_id=course_id,
                activity_type=activity_type,
                name=name,
                open_time=open_time,
                close_time=close_time,
                time_limit=time_limit,
                session=db_session,
            )

    return create_activity


@pytest.fixture
def mapping_factory(
    db_session: Session,
    component_factory: t.Callable[..., ComponentGrade],
    activity_factory: t.Callable[..., Activity],
) -> t.Callable[..., MappingWithComponent]:
    """Factory fixture for extension-enabled mappings.

    Creates the activity too unless an existing `activity` is given.
    """

    def create_mapping(
        activity: Activity | None = None,
        component: ComponentGrade | None = None,
        enable_extension: bool = True,
        reassessment: bool = False,
        **activity_kwargs: t.Any,
    ) -> MappingWithComponent:
        activity = activity or activity_factory(**activity_kwargs)
        component = component or component_factory()
        with db_session.begin():
            return mapping_store.create(
                course_id=activity.course_id,
                activity_type=activity.activity_type,
                activity_id=activity.activity_id,
                component_grade_id=component.component_grade_id,
                enable_extension=enable_extension,
                reassessment=reassessment,
                session=db_session,
            )

    return create_mapping


@pytest.fixture
def student_factory(db_session: Session) -> t.Callable[..., LmsUser]:
    """Factory fixture for platform users with a student code, enrolled as students in a course."""
    counter = iter(range(1, 10_000))

    def create_student(
        student_code: str | None = None,
        course_id: int | None = 100,
        role: str = "student",
    ) -> LmsUser:
        n = next(counter)
        student_code = student_code or f"{12340000 + n}"
        with db_session.begin():
            user = user_store.create(username=f"student{student_code}", student_code=student_code, session=db_session)
            if course_id is not None:
                user_store.enrol(course_id=course_id, user_id=user.user_id, role=role, session=db_session)
            return user

    return create_student


@pytest.fixture
def raa_snapshot() -> t.Callable[..., StudentRecord]:
    """Builds a roster entry carrying an accommodation; approved unless a status is given."""
    return _raa_snapshot


def _raa_snapshot(student_code: str, user_id: int | None = None, **provisions: t.Any) -> StudentRecord:
    provisions.setdefault("accessibility_assessment_status", "5")
    return StudentRecord(
        student_code=student_code,
        user_id=user_id,
        payload={
            "association": {"supplementary": {"student_code": student_code}},
            "student_assessment": {"required_provisions": provisions},
        },
    )


@pytest.fixture
def ec_snapshot() -> t.Callable[..., StudentRecord]:
    """Builds a roster entry carrying extenuating circumstances as (identifier, new_due_date) pairs."""
    return _ec_snapshot


def _ec_snapshot(student_code: str, user_id: int | None = None, *due: tuple[str, str]) -> StudentRecord:
    return StudentRecord(
        student_code=student_code,
        user_id=user_id,
        payload={
            "association": {"supplementary": {"student_code": student_code}},
            "student_assessment": {"required_provisions": {}},
            "extenuating_circumstance": [{"identifier": i, "new_due_date": d} for i, d in due],
        },
    )
