# backend/wsgi.py
from deposito import create_app

app = create_app()
