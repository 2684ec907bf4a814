# This project was developed with assistance from AI tools.
"""Integration test fixtures -- real PostgreSQL, no mocks.

A session-scoped container is migrated once with alembic. The orchestrator
commits through its own sessions, so each test starts from truncated tables
rather than a rolled-back savepoint.
"""

import os
from collections import namedtuple
from decimal import Decimal

import pytest
import pytest_asyncio
from db import (
    Application,
    Document,
    Lender,
    LenderProduct,
    LenderProductRequirement,
)
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from testcontainers.postgres import PostgresContainer

from backoffice.core.config import Settings
from backoffice.services.circuit_breaker import CircuitBreakerRegistry
from backoffice.services.orchestrator import JobOrchestrator
from backoffice.services.stage_engine import ProcessingStageEngine

pytestmark = pytest.mark.integration

_ROOT = os.path.join(os.path.dirname(__file__), "..", "..")

_TABLES = (
    "audit_events",
    "application_required_documents",
    "credit_summary_jobs",
    "banking_analysis_jobs",
    "document_processing_jobs",
    "documents",
    "applications",
    "lender_product_requirements",
    "lender_products",
    "lenders",
)


# ---------------------------------------------------------------------------
# Session-scoped: container + migrations
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def pg_container():
    with PostgresContainer(
        image="postgres:16",
        username="test",
        password="test",
        dbname="test",
    ) as pg:
        yield pg


@pytest.fixture(scope="session")
def db_url(pg_container):
    """Async DB URL for asyncpg."""
    host = pg_container.get_container_host_ip()
    port = pg_container.get_exposed_port(5432)
    return f"postgresql+asyncpg://test:test@{host}:{port}/test"


@pytest.fixture(scope="session", autouse=True)
def _run_migrations(db_url):
    """Run alembic upgrade head against the test container."""
    from alembic import command
    from alembic.config import Config

    os.environ["DATABASE_URL"] = db_url
    alembic_cfg = Config(os.path.join(_ROOT, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(_ROOT, "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(alembic_cfg, "head")


# ---------------------------------------------------------------------------
# Function-scoped: engine, clean tables, services
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory(db_url, _run_migrations):
    engine = create_async_engine(db_url, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.execute(text(f"TRUNCATE {', '.join(_TABLES)} RESTART IDENTITY CASCADE"))
    yield async_sessionmaker(engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def breakers():
    return CircuitBreakerRegistry()


@pytest.fixture
def stage_engine(session_factory, breakers):
    return ProcessingStageEngine(session_factory, breakers)


@pytest.fixture
def orchestrator(session_factory, stage_engine, breakers):
    return JobOrchestrator(session_factory, stage_engine, breakers, Settings())


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

SeedData = namedtuple("SeedData", ["product_id", "application_id", "id_document_id", "statement_ids"])


@pytest_asyncio.fixture
async def seed_data(session_factory):
    """One LOC product requiring bank statements and government ID, one application.

    The application has an uploaded ID document and six uploaded bank statements.
    """
    async with session_factory() as session:
        lender = Lender(name="Maple Capital")
        session.add(lender)
        await session.flush()

        product = LenderProduct(
            lender_id=lender.id,
            name="Maple LOC",
            category="LOC",
            country="CA",
            min_amount=Decimal("10000"),
            max_amount=Decimal("500000"),
        )
        session.add(product)
        await session.flush()
        session.add_all(
            [
                LenderProductRequirement(lender_product_id=product.id, document_type="bank_statement"),
                LenderProductRequirement(lender_product_id=product.id, document_type="id_document"),
            ]
        )

        application = Application(
            product_type="LOC",
            lender_product_id=product.id,
            requested_amount=Decimal("75000"),
            app_metadata={"business": {"address": {"country": "CA"}}},
        )
        session.add(application)
        await session.flush()

        id_document = Document(application_id=application.id, document_type="government_id")
        statements = [
            Document(application_id=application.id, document_type="bank_statement")
            for _ in range(6)
        ]
        session.add(id_document)
        session.add_all(statements)
        await session.flush()

        data = SeedData(
            product_id=product.id,
            application_id=application.id,
            id_document_id=id_document.id,
            statement_ids=[d.id for d in statements],
        )
        await session.commit()
    return data
