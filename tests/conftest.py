import pytest

from student_auth.auth.credentials import CredentialManager
from student_auth.auth.jwt_handler import SessionIssuer
from student_auth.core.config import Settings
from student_auth.database import Base, build_engine, build_session_factory, init_schema

TEST_SECRET = 'test-signing-secret-0123456789abcdef'


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url='sqlite:///:memory:',
        jwt_secret_key=TEST_SECRET,
        bcrypt_rounds=4,
        static_dir='does-not-exist',
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings)
    init_schema(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def manager(session_factory, settings) -> CredentialManager:
    return CredentialManager(session_factory, bcrypt_rounds=settings.bcrypt_rounds)


@pytest.fixture
def issuer(settings) -> SessionIssuer:
    return SessionIssuer.from_settings(settings)
