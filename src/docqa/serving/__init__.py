"""
Serving — FastAPI application exposing submission, status and query endpoints.

The app is built by :func:`docqa.serving.app.create_app` around explicitly
constructed services so it can run against fakes in tests.
"""
