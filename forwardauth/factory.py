"""Provides an app factory for the forward-auth gateway."""

import logging
import os
import sys
from typing import Any, Mapping, Optional

from flask import Flask, Response, current_app
from werkzeug.exceptions import HTTPException, InternalServerError, \
    MethodNotAllowed, NotFound, ServiceUnavailable

from . import routes
from .services import signing, token_store
from .services.exceptions import StoreCorrupted, StoreUnavailable

logger = logging.getLogger(__name__)

LOG_FORMAT = 'application %(asctime)s - %(name)s - %(levelname)s: ' \
    '"%(message)s"'
EXIT_STORE_CORRUPTED = 70


def plain_exception(error: HTTPException) -> Response:
    """Render an HTTP error with its bare reason phrase as the body."""
    response = error.get_response()
    response.set_data(error.name)
    response.mimetype = 'text/plain'
    return response


def not_found(error: MethodNotAllowed) -> Response:
    """Known path, wrong method; routes are method-qualified."""
    return plain_exception(NotFound())


def store_unavailable(error: StoreUnavailable) -> Response:
    logger.error('Token store unavailable: %s', error)
    return plain_exception(ServiceUnavailable())


def store_corrupted(error: StoreCorrupted) -> Response:
    """Refuse the request and take the process down."""
    logger.critical('Token store corrupted, shutting down: %s', error)
    if current_app.config['FAIL_CLOSED_EXIT']:
        os._exit(EXIT_STORE_CORRUPTED)
    return plain_exception(InternalServerError())


def unhandled_exception(error: Exception) -> Response:
    logger.exception('Unhandled exception: %s', error)
    return plain_exception(InternalServerError())


def _configure_logging(level: str) -> None:
    package_logger = logging.getLogger(__package__)
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)


def create_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    """
    Initialize an instance of the forward-auth gateway.

    The signing secret and the token store are created here, once, and are
    shared by every request the app handles.

    Parameters
    ----------
    config : mapping
        Overrides applied on top of :mod:`.config` before anything is
        initialized.

    """
    app = Flask('forwardauth', static_folder=None)
    app.config.from_pyfile('config.py')
    if config is not None:
        app.config.update(config)
    _configure_logging(app.config['LOGLEVEL'])

    signing.init_app(app)
    token_store.init_app(app)

    app.register_blueprint(routes.blueprint)
    app.errorhandler(MethodNotAllowed)(not_found)
    app.errorhandler(HTTPException)(plain_exception)
    app.errorhandler(StoreUnavailable)(store_unavailable)
    app.errorhandler(StoreCorrupted)(store_corrupted)
    app.errorhandler(Exception)(unhandled_exception)
    return app
