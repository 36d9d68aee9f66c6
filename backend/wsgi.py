# backend/wsgi.py
from guildhall import create_app

app = create_app()
