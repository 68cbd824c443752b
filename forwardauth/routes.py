"""Provides the HTTP surface of the forward-auth gateway."""

import logging

from flask import Blueprint, Response, current_app, make_response, request, \
    send_from_directory

from .config import AUTH_HEADER_NAME
from .controllers import authentication
from .domain import Credentials
from .services.signing import current_signer
from .services.token_store import current_store

logger = logging.getLogger(__name__)

blueprint = Blueprint('forwardauth', __name__, url_prefix='')


def _respond(body: str, code: int, headers: dict) -> Response:
    response = make_response(body, code, headers)
    response.mimetype = 'text/plain'
    return response


def _serve_file(filename: str) -> Response:
    """Serve a file from ``STATIC_ROOT``; raises 404 if it is missing."""
    return send_from_directory(current_app.config['STATIC_ROOT'], filename)


@blueprint.route('/', methods=['GET'],
                 provide_automatic_options=False)
@blueprint.route('/index.html', methods=['GET'],
                 provide_automatic_options=False)
def index() -> Response:
    """Login page."""
    return _serve_file('index.html')


@blueprint.route('/script.js', methods=['GET'],
                 provide_automatic_options=False)
def script() -> Response:
    """Script for the login page."""
    return _serve_file('script.js')


@blueprint.route('/login', methods=['POST'],
                 provide_automatic_options=False)
def login() -> Response:
    """Issue a token in exchange for a username and password."""
    payload = request.get_json(force=True, silent=True)
    accepted = Credentials(username=current_app.config['LOGIN_USERNAME'],
                           password=current_app.config['LOGIN_PASSWORD'])
    body, code, headers = authentication.login(payload, current_store(),
                                               current_signer(), accepted)
    return _respond(body, code, headers)


@blueprint.route('/forward', methods=['GET'],
                 provide_automatic_options=False)
def forward() -> Response:
    """Answer an authorization subrequest from the reverse proxy."""
    value = request.headers.get(AUTH_HEADER_NAME)
    body, code, headers = authentication.forward(value, current_store(),
                                                 current_signer())
    return _respond(body, code, headers)


@blueprint.route('/logout', methods=['POST'],
                 provide_automatic_options=False)
def logout() -> Response:
    """Revoke the token in the request header."""
    value = request.headers.get(AUTH_HEADER_NAME)
    body, code, headers = authentication.logout(value, current_store(),
                                                current_signer())
    return _respond(body, code, headers)
