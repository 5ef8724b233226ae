import logging
import time

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from student_auth.auth import passwords
from student_auth.core import errors
from student_auth.models.user import User

logger = logging.getLogger(__name__)


def normalize_identifier(value: str) -> str:
    return value.strip().upper()


def normalize_email(value: str) -> str:
    return value.strip().lower()


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CredentialManager:
    """Registers users and checks login credentials against the user store.

    The duplicate lookup before insert only short-circuits the common case;
    two concurrent registrations can both pass it, so the unique constraints
    on ``users`` are what actually guarantee one account per identifier/email.
    """

    def __init__(self, session_factory: sessionmaker, bcrypt_rounds: int = passwords.DEFAULT_ROUNDS):
        self._session_factory = session_factory
        self.bcrypt_rounds = bcrypt_rounds
        self._dummy_hash: str | None = None

    def register(
        self,
        identifier: str,
        full_name: str,
        email: str,
        password: str,
        department: str | None = None,
        cohort_year: str | None = None,
        deadline: float | None = None,
    ) -> User:
        """Create a user.

        ``deadline`` is a ``time.monotonic()`` value; once it has passed the
        insert is rolled back instead of committed, so a caller that gave up
        waiting never leaves an account behind.
        """
        identifier = normalize_identifier(identifier)
        email = normalize_email(email)

        db = self._session_factory()
        try:
            existing = db.query(User.id).filter(
                or_(User.email == email, User.identifier == identifier)
            ).first()
            if existing:
                logger.info("Signup rejected: duplicate of user %s", existing.id)
                raise errors.DuplicateCredential()

            user = User(
                identifier=identifier,
                full_name=full_name.strip(),
                email=email,
                password_hash=passwords.hash_password(password, rounds=self.bcrypt_rounds),
                department=_clean_optional(department),
                cohort_year=_clean_optional(cohort_year),
            )
            db.add(user)
            if deadline is not None and time.monotonic() >= deadline:
                db.rollback()
                logger.error("Signup for %s abandoned: deadline passed before commit", identifier)
                raise errors.ServerError()
            db.commit()
            db.refresh(user)
        except IntegrityError as exc:
            db.rollback()
            logger.info("Signup rejected: unique constraint hit for %s", identifier)
            raise errors.DuplicateCredential() from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Signup failed: user store error")
            raise errors.ServerError() from exc
        finally:
            db.close()

        logger.info("User %s registered", user.id)
        return user

    def authenticate(self, identifier_or_email: str, password: str) -> User:
        candidate = identifier_or_email.strip()

        db = self._session_factory()
        try:
            user = db.query(User).filter(
                or_(
                    User.email == candidate.lower(),
                    User.identifier == candidate.upper(),
                )
            ).first()
        except SQLAlchemyError as exc:
            logger.exception("Login failed: user store error")
            raise errors.ServerError() from exc
        finally:
            db.close()

        if user is None:
            # Burn the same bcrypt work as a real check so response timing
            # does not reveal whether the account exists.
            passwords.verify_password(password, self._get_dummy_hash())
            logger.info("Login rejected: unknown account")
            raise errors.InvalidCredentials()

        if not passwords.verify_password(password, user.password_hash):
            logger.info("Login rejected: password mismatch for user %s", user.id)
            raise errors.InvalidCredentials()

        logger.info("User %s logged in", user.id)
        return user

    def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = passwords.dummy_hash(self.bcrypt_rounds)
        return self._dummy_hash
