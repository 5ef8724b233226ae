import logging
import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from student_auth.auth.credentials import CredentialManager
from student_auth.auth.jwt_handler import SessionIssuer
from student_auth.core import errors
from student_auth.core.config import Settings, load_settings, warn_on_insecure_settings
from student_auth.database import build_engine, build_session_factory, init_schema
from student_auth.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from student_auth.routes import auth_routes

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


def format_validation_errors(raw_errors) -> list[dict]:
    formatted = []
    for error in raw_errors:
        location = [part for part in error.get('loc', ()) if isinstance(part, str) and part != 'body']
        message = error.get('msg', 'Invalid value')
        if error.get('type') == 'value_error':
            message = message.removeprefix('Value error, ')
        formatted.append({
            'field': location[-1] if location else 'body',
            'message': message,
        })
    return formatted


async def auth_error_handler(request: Request, exc: errors.AuthError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    field_errors = format_validation_errors(exc.errors())
    logger.info('%s %s rejected: %s', request.method, request.url.path, [e['field'] for e in field_errors])
    return JSONResponse(status_code=400, content=errors.ValidationError(field_errors).to_payload())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error on %s %s', request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=errors.ServerError().to_payload())


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    warn_on_insecure_settings(settings)

    engine = build_engine(settings)
    session_factory = build_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            init_schema(engine)
        except SQLAlchemyError:
            logger.exception('Database initialization failed. Check DATABASE_URL.')
            raise
        logger.info('User store ready')
        yield
        engine.dispose()

    app = FastAPI(title='Student Auth', lifespan=lifespan)

    app.state.settings = settings
    app.state.engine = engine
    app.state.credential_manager = CredentialManager(session_factory, bcrypt_rounds=settings.bcrypt_rounds)
    app.state.session_issuer = SessionIssuer.from_settings(settings)

    app.add_middleware(SecurityHeadersMiddleware, production=settings.is_production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(errors.AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(auth_routes.router, prefix='/api')

    @app.get('/api/ping')
    def ping():
        return {
            'ok': True,
            'message': 'Server is running',
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }

    @app.api_route('/api/{path:path}', methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'], include_in_schema=False)
    def api_not_found(request: Request, path: str):
        logger.info('API route not found: %s %s', request.method, request.url.path)
        return JSONResponse(status_code=404, content={'ok': False, 'message': 'API endpoint not found'})

    if os.path.isdir(settings.static_dir):
        app.mount('/', StaticFiles(directory=settings.static_dir, html=True), name='static')

    return app


def main() -> None:
    try:
        settings = load_settings()
        app = create_app(settings)
    except errors.StartupError as exc:
        print(f'Failed to start server: {exc}', file=sys.stderr)
        sys.exit(1)

    import uvicorn
    logger.info('Listening on http://%s:%s', settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, server_header=False)


if __name__ == '__main__':
    main()
