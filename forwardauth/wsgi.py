"""Web Server Gateway Interface entry-point."""

from .factory import create_app

# One app per process: every request handled by this worker shares its token
# store. Run more than one worker process only with ``TOKEN_STORE=redis``.
application = create_app()
