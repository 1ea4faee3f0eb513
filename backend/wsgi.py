# backend/wsgi.py
from farmdesk import create_app

app = create_app()
