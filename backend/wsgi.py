# backend/wsgi.py
from seatclock import create_app

app = create_app()
