# backend/wsgi.py
from cave import create_app

app = create_app()
