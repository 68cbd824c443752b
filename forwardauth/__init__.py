"""
Lightweight forward-authentication gateway.

The gateway is a Flask application that handles authorization subrequests
from a reverse proxy (NGINX ``auth_request``, Traefik ``forwardAuth``, and
the like).

A client logs in with ``POST /login`` and receives an opaque token in the
``X-Forward-Auth`` response header. On every subsequent request to a
protected upstream, the proxy issues a subrequest to ``GET /forward``
carrying that header. The gateway answers 200 (OK) if the token is one it
issued and has not expired or been revoked, or 401 (Unauthorized)
otherwise, and the proxy forwards or rejects the original request
accordingly.

Tokens are signed JWTs (see :mod:`.services.signing`) that must also be
present in the shared token store (see :mod:`.services.token_store`).
The signing secret is taken from ``TOKEN_SECRET``; if it is not set, a
random secret is generated at startup, which means that every token
issued before a restart stops working after it.
"""
