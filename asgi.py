"""
asgi.py -- Process entry point for the shared-libs API.

Loads configuration once (auto mode: Secret Manager on Google Cloud, plain
environment otherwise) and builds the app around it. A configuration error
raises here, before the server binds its port.

Run with:  uvicorn asgi:app --port "$PORT"
"""

from api.main import create_app
from core.config import load_config

app = create_app(load_config())
