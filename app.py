#!/usr/bin/env python3
"""
WSGI entry point for the hosted print queue.

    gunicorn app:app
    flask --app app run

Configuration comes from PRINTRELAY_* environment variables.
"""

from print_relay import create_app

app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8000, threaded=True)
