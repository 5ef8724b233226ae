import asyncio
import json
import runpy
from dataclasses import replace
from types import SimpleNamespace

import pytest
from fastapi.exceptions import RequestValidationError
from sqlalchemy import inspect
from starlette.routing import Mount

from student_auth import main
from student_auth.auth.credentials import CredentialManager
from student_auth.auth.jwt_handler import SessionIssuer
from student_auth.core import errors


def _fake_request(method: str = 'POST', path: str = '/api/signup'):
    return SimpleNamespace(method=method, url=SimpleNamespace(path=path))


def _route(app, path: str):
    return next(route for route in app.routes if getattr(route, 'path', None) == path)


def test_create_app_wires_components_onto_state(settings) -> None:
    app = main.create_app(settings)

    assert app.state.settings is settings
    assert isinstance(app.state.credential_manager, CredentialManager)
    assert app.state.credential_manager.bcrypt_rounds == 4
    assert isinstance(app.state.session_issuer, SessionIssuer)
    assert app.state.session_issuer.secure_cookies is False


def test_create_app_registers_auth_routes(settings) -> None:
    app = main.create_app(settings)
    paths = {getattr(route, 'path', None) for route in app.routes}

    assert {'/api/signup', '/api/register', '/api/login', '/api/ping', '/api/{path:path}'} <= paths


def test_create_app_uses_secure_cookies_in_production(settings) -> None:
    app = main.create_app(replace(settings, app_env='production'))

    assert app.state.session_issuer.secure_cookies is True


def test_create_app_fails_fast_without_database_url(monkeypatch) -> None:
    monkeypatch.delenv('DATABASE_URL', raising=False)
    monkeypatch.setattr('student_auth.core.config.load_dotenv', lambda: False)

    with pytest.raises(errors.StartupError):
        main.create_app()


def test_main_exits_with_status_one_on_startup_error(monkeypatch) -> None:
    def raise_startup_error():
        raise errors.StartupError('DATABASE_URL is not set.')

    monkeypatch.setattr(main, 'load_settings', raise_startup_error)

    with pytest.raises(SystemExit) as exception_info:
        main.main()

    assert exception_info.value.code == 1


def test_ping_reports_server_running(settings) -> None:
    app = main.create_app(settings)

    payload = _route(app, '/api/ping').endpoint()

    assert payload['ok'] is True
    assert payload['message'] == 'Server is running'
    assert 'timestamp' in payload


def test_unknown_api_route_returns_json_404(settings) -> None:
    app = main.create_app(settings)

    response = _route(app, '/api/{path:path}').endpoint(request=_fake_request('GET', '/api/nope'), path='nope')

    assert response.status_code == 404
    assert json.loads(response.body) == {'ok': False, 'message': 'API endpoint not found'}


@pytest.mark.parametrize(
    ('error', 'status_code', 'body'),
    [
        (errors.DuplicateCredential(), 409, {'ok': False, 'message': 'SRN or email already registered'}),
        (errors.InvalidCredentials(), 401, {'ok': False, 'message': 'Invalid credentials'}),
        (errors.ServerError(), 500, {'ok': False, 'message': 'Server error'}),
    ],
)
def test_auth_error_handler_maps_status_and_message(error, status_code: int, body: dict) -> None:
    response = asyncio.run(main.auth_error_handler(_fake_request(), error))

    assert response.status_code == status_code
    assert json.loads(response.body) == body


def test_request_validation_handler_returns_field_errors() -> None:
    exc = RequestValidationError([
        {
            'type': 'value_error',
            'loc': ('body', 'password'),
            'msg': 'Value error, Password min 8 chars',
            'input': 'seven77',
        },
    ])

    response = asyncio.run(main.request_validation_handler(_fake_request(), exc))

    assert response.status_code == 400
    assert json.loads(response.body) == {
        'ok': False,
        'errors': [{'field': 'password', 'message': 'Password min 8 chars'}],
    }


def test_unhandled_error_handler_hides_internal_detail() -> None:
    response = asyncio.run(main.unhandled_error_handler(_fake_request(), RuntimeError('driver code 11000 at db-1')))

    assert response.status_code == 500
    assert json.loads(response.body) == {'ok': False, 'message': 'Server error'}


def test_malformed_json_is_reported_against_the_body() -> None:
    raw_errors = [{'type': 'json_invalid', 'loc': ('body', 1), 'msg': 'JSON decode error'}]

    assert main.format_validation_errors(raw_errors) == [{'field': 'body', 'message': 'JSON decode error'}]


def test_lifespan_creates_schema_and_disposes_engine(settings, monkeypatch) -> None:
    app = main.create_app(settings)
    engine = app.state.engine
    disposed = []
    monkeypatch.setattr(engine, 'dispose', lambda *args, **kwargs: disposed.append(True))

    async def run_lifespan():
        async with app.router.lifespan_context(app):
            assert disposed == []
            return inspect(engine).get_table_names()

    tables = asyncio.run(run_lifespan())

    assert 'users' in tables
    assert disposed == [True]


def test_static_directory_is_mounted_after_api_routes(settings, tmp_path) -> None:
    (tmp_path / 'signup.html').write_text('<form></form>')
    app = main.create_app(replace(settings, static_dir=str(tmp_path)))

    names = [getattr(route, 'name', None) for route in app.routes]
    paths = [getattr(route, 'path', None) for route in app.routes]

    static = app.routes[names.index('static')]
    assert isinstance(static, Mount)
    assert names.index('static') > paths.index('/api/{path:path}')


def test_static_directory_is_skipped_when_missing(settings) -> None:
    app = main.create_app(settings)

    assert 'static' not in [getattr(route, 'name', None) for route in app.routes]


def test_main_runs_uvicorn_without_server_header(settings, monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(main, 'load_settings', lambda: settings)
    monkeypatch.setattr('uvicorn.run', lambda app, **kwargs: calls.append(kwargs))

    main.main()

    [kwargs] = calls
    assert kwargs['server_header'] is False
    assert kwargs['port'] == settings.port


def test_package_is_runnable_with_python_dash_m(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(main, 'main', lambda: calls.append(True))

    runpy.run_module('student_auth', run_name='__main__')

    assert calls == [True]
