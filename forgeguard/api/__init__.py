"""
HTTP API.

The application factory is `forgeguard.api.app.create_app`.
"""
