# backend/wsgi.py
from salonledger import create_app

app = create_app()
