# Overview: WSGI entrypoint; also the FLASK_APP target for the CLI command groups.

from mikropanel import create_app

app = create_app()
