import asyncio
import functools
import logging
import time
from collections.abc import Callable
from typing import Any

from email_validator import EmailNotValidError, validate_email
from fastapi import APIRouter, Depends, Request, Response
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from student_auth.auth.credentials import CredentialManager, normalize_email, normalize_identifier
from student_auth.auth.jwt_handler import SessionIssuer, session_ttl
from student_auth.core import errors
from student_auth.core.config import Settings

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    identifier: str = Field(
        default='',
        validate_default=True,
        validation_alias=AliasChoices('identifier', 'srn'),
    )
    full_name: str = Field(
        default='',
        validate_default=True,
        validation_alias=AliasChoices('fullName', 'fullname', 'full_name'),
    )
    email: str = Field(default='', validate_default=True)
    password: str = Field(default='', validate_default=True)
    department: str | None = None
    cohort_year: str | None = Field(
        default=None,
        validation_alias=AliasChoices('cohortYear', 'year', 'cohort_year'),
    )

    @field_validator('identifier')
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        normalized = normalize_identifier(value)
        if not normalized:
            raise ValueError('SRN required')
        return normalized

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Full name required')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email_address(cls, value: str) -> str:
        normalized = normalize_email(value)
        try:
            validate_email(normalized, check_deliverability=False, globally_deliverable=False)
        except EmailNotValidError as exc:
            raise ValueError('Valid email required') from exc
        return normalized

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password min {MIN_PASSWORD_LENGTH} chars')
        return value


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    identifier_or_email: str = Field(
        default='',
        validate_default=True,
        validation_alias=AliasChoices('identifier_or_email', 'identifier'),
    )
    password: str = Field(default='', validate_default=True)
    remember: bool = False

    @field_validator('identifier_or_email')
    @classmethod
    def validate_identifier_or_email(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('SRN or email required')
        return normalized

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if not value:
            raise ValueError('Password required')
        return value


class UserProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    identifier: str
    full_name: str = Field(alias='fullName')
    email: str


class UserDetail(UserProfile):
    department: str | None = None
    cohort_year: str | None = Field(default=None, alias='cohortYear')


class SignupResponse(BaseModel):
    ok: bool = True
    user: UserProfile


class LoginResponse(BaseModel):
    ok: bool = True
    user: UserDetail


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_credential_manager(request: Request) -> CredentialManager:
    return request.app.state.credential_manager


def get_session_issuer(request: Request) -> SessionIssuer:
    return request.app.state.session_issuer


async def run_blocking(func: Callable[..., Any], *args: Any, timeout: float, **kwargs: Any) -> Any:
    # The worker thread cannot be interrupted; on timeout it is abandoned and
    # the request fails without waiting for it.
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
    try:
        return await asyncio.wait_for(future, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.error('%s did not finish within %.1fs', getattr(func, '__name__', func), timeout)
        raise errors.ServerError() from exc


@router.post('/signup', response_model=SignupResponse)
@router.post('/register', response_model=SignupResponse)
async def signup(
    data: RegisterRequest,
    response: Response,
    settings: Settings = Depends(get_settings),
    manager: CredentialManager = Depends(get_credential_manager),
    issuer: SessionIssuer = Depends(get_session_issuer),
):
    user = await run_blocking(
        manager.register,
        deadline=time.monotonic() + settings.request_timeout_seconds,
        identifier=data.identifier,
        full_name=data.full_name,
        email=data.email,
        password=data.password,
        department=data.department,
        cohort_year=data.cohort_year,
        timeout=settings.request_timeout_seconds,
    )

    session_token = issuer.issue_token(user.id, user.identifier, user.email, session_ttl(settings))
    issuer.set_cookie(response, session_token)

    return {'ok': True, 'user': user.public_profile()}


@router.post('/login', response_model=LoginResponse)
async def login(
    data: LoginRequest,
    response: Response,
    settings: Settings = Depends(get_settings),
    manager: CredentialManager = Depends(get_credential_manager),
    issuer: SessionIssuer = Depends(get_session_issuer),
):
    user = await run_blocking(
        manager.authenticate,
        data.identifier_or_email,
        data.password,
        timeout=settings.request_timeout_seconds,
    )

    ttl = session_ttl(settings, remember=data.remember)
    session_token = issuer.issue_token(user.id, user.identifier, user.email, ttl)
    issuer.set_cookie(response, session_token)

    return {'ok': True, 'user': user.full_profile()}
