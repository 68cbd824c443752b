"""Run the development server."""

from .factory import create_app

app = create_app()
app.run(host=app.config['SERVER_HOST'], port=int(app.config['SERVER_PORT']),
        threaded=True)
