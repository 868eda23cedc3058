# backend/wsgi.py
from devco import create_app

app = create_app()
