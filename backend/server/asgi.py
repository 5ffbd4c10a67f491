"""
ASGI entry point.

Used by uvicorn / gunicorn:

    uvicorn server.asgi:app --app-dir backend

`.env` is loaded before the config is read, so local development needs
no exported variables.
"""

from dotenv import load_dotenv

load_dotenv()

from server.app import create_app  # pylint: disable=wrong-import-position

app = create_app()
