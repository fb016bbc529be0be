"""
Application package for the HTTP query API and the shared core.

``core`` holds configuration, logging, errors and database access,
``services`` the card registry logic, ``schemas`` the wire models and
``api`` the FastAPI routes.  The FastAPI instance is built by
:func:`card_registry.app.main.create_app` once the card service exists.
"""
