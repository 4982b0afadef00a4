import os
import sys
from decimal import Decimal

import pytest

# Add the project root to sys.path so the sugar_coupons package imports without installing
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../")))
# In-memory database for anything that touches the module-level engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sugar_coupons.auth import OperatorSession, SessionProvider
from sugar_coupons.database import Base
from sugar_coupons import orm_models  # noqa: F401
from sugar_coupons.services.roster_parser import parse
from sugar_coupons.store import SeasonStore

from .helpers import HEADER, roster_row


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def store(session_factory):
    return SeasonStore(session_factory, default_rate=Decimal("31.5"))


@pytest.fixture
def admin():
    return OperatorSession(operator="admin@nslsugars.in", role="admin")


@pytest.fixture
def clerk():
    return OperatorSession(operator="counter1@nslsugars.in", role="operator")


@pytest.fixture
def clerk_provider(clerk):
    return SessionProvider(clerk)


@pytest.fixture
def sample_grid():
    return [
        HEADER,
        roster_row(1, "R100", "C100", name="Ramappa", eligible="100", rate="31.5"),
        roster_row(2, "R200", "C200", name="Basavaraj", eligible="50", rate=""),
        roster_row(3, "R300", "C300", name="Manjunath", eligible="12.5", rate="40"),
    ]


@pytest.fixture
def loaded_store(store, sample_grid):
    store.insert_farmers(list(parse(sample_grid)))
    return store
