"""Shared fixtures for the conciliacao test suite.

Every test gets a fresh in-memory SQLite database seeded with one organization
(store, active and inactive bank accounts, an operator user), a second
organization for tenancy checks, and a user without an organization profile.
Test docstrings are used as display names in pytest output.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import conciliacao.models as models
from conciliacao.constants import BankAccountType, UserRole
from conciliacao.core.hashing import get_password_hash
from conciliacao.core.security import RequestContext, create_access_token
from conciliacao.database import Base, get_db

TEST_PASSWORD = "s3nha-forte"

SAMPLE_OFX = """OFXHEADER:100
DATA:OFXSGML
VERSION:102
ENCODING:USASCII

<OFX>
<BANKMSGSRSV1>
<STMTTRNRS>
<STMTRS>
<CURDEF>BRL
<BANKACCTFROM>
<BANKID>0341
<ACCTID>12345-6
<ACCTTYPE>CHECKING
</BANKACCTFROM>
<BANKTRANLIST>
<DTSTART>20240301000000[-3:BRT]
<DTEND>20240331235959[-3:BRT]
<STMTTRN>
<TRNTYPE>DEBIT
<DTPOSTED>20240305120000[-3:BRT]
<TRNAMT>-150.00
<FITID>A
<NAME>PAG BOLETO FORNECEDOR
<MEMO>Boleto 123
</STMTTRN>
<STMTTRN>
<TRNTYPE>CREDIT
<DTPOSTED>20240310
<TRNAMT>2500,50
<FITID>B
<NAME>VENDAS CARTAO
</STMTTRN>
<STMTTRN>
<TRNTYPE>DEBIT
<DTPOSTED>20240315120000[-3:BRT]
<TRNAMT>-42.90
<FITID>C
<NAME>TARIFA BANCARIA
</STMTTRN>
<STMTTRN>
<TRNTYPE>DEBIT
<DTPOSTED>20240320
<FITID>D
<NAME>SEM VALOR
</STMTTRN>
</BANKTRANLIST>
</STMTRS>
</STMTTRNRS>
</BANKMSGSRSV1>
</OFX>
"""


def pytest_collection_modifyitems(items):
    """
    Use the first non-empty docstring line of each test as its display name.
    Parametrized tests keep their parameter id.
    """
    for item in items:
        doc = getattr(item, "function", None) and item.function.__doc__
        if doc:
            summary = next(
                (line.strip() for line in doc.strip().splitlines() if line.strip()),
                None
            )
            if summary:
                if hasattr(item, "callspec"):
                    start = item.nodeid.find('[')
                    param_part = item.nodeid[start:] if start != -1 else ''
                    item._nodeid = summary + param_part
                else:
                    item._nodeid = summary


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN handling for SAVEPOINT support.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db_session):
    org = models.Organization(name="Vitaliano")
    other_org = models.Organization(name="Outra Rede")
    db_session.add_all([org, other_org])
    db_session.flush()

    store = models.Store(org_id=org.id, name="Loja Centro", code="CTR")
    second_store = models.Store(org_id=org.id, name="Loja Norte", code="NRT")
    other_store = models.Store(org_id=other_org.id, name="Loja Externa")
    db_session.add_all([store, second_store, other_store])
    db_session.flush()

    bank_account = models.BankAccount(
        org_id=org.id, store_id=store.id, name="Itau Movimento", bank_name="Itau",
        agency="0001", account_number="12345-6", account_type=BankAccountType.CHECKING,
    )
    second_bank_account = models.BankAccount(
        org_id=org.id, store_id=store.id, name="Bradesco Movimento", bank_name="Bradesco",
    )
    inactive_bank_account = models.BankAccount(
        org_id=org.id, store_id=store.id, name="Conta Encerrada", is_active=False,
    )
    other_org_bank_account = models.BankAccount(
        org_id=other_org.id, store_id=other_store.id, name="Conta Externa",
    )
    db_session.add_all([bank_account, second_bank_account, inactive_bank_account, other_org_bank_account])

    user = models.User(
        email="operador@vitaliano.com.br",
        password_hash=get_password_hash(TEST_PASSWORD),
        full_name="Operador",
        role=UserRole.OPERATOR,
        org_id=org.id,
    )
    user_without_profile = models.User(
        email="sem.perfil@vitaliano.com.br",
        password_hash=get_password_hash(TEST_PASSWORD),
        role=UserRole.OPERATOR,
        org_id=None,
    )
    db_session.add_all([user, user_without_profile])
    db_session.commit()

    return SimpleNamespace(
        org_id=org.id,
        other_org_id=other_org.id,
        store_id=store.id,
        second_store_id=second_store.id,
        other_store_id=other_store.id,
        bank_account_id=bank_account.id,
        second_bank_account_id=second_bank_account.id,
        inactive_bank_account_id=inactive_bank_account.id,
        other_org_bank_account_id=other_org_bank_account.id,
        user_id=user.id,
        user_email=user.email,
        user_without_profile_id=user_without_profile.id,
        user_without_profile_email=user_without_profile.email,
    )


@pytest.fixture
def context(seed):
    return RequestContext(user_id=seed.user_id, org_id=seed.org_id, ip_address="127.0.0.1")


@pytest.fixture
def sample_ofx():
    return SAMPLE_OFX


@pytest.fixture
def client(db_session, seed):
    from conciliacao.main import app

    def override_get_db():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(seed):
    token = create_access_token({"sub": seed.user_email, "user_id": seed.user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_password():
    return TEST_PASSWORD
