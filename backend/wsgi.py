# backend/wsgi.py
from elhamd import create_app

app = create_app()
