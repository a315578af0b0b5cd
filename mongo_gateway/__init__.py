"""REST gateway for authenticated CRUD on a MongoDB database."""

__version__ = "1.0.0"
