"""LogoGen -- FastAPI REST API layer.

Modules
-------
main
    Application factory, route handlers and the ``main()`` CLI entry point.
models
    Pydantic request models.
request_log
    Middleware that records every API call to the activity log.
"""
