"""Hook for checking documents before they are stored.

Documents are schemaless by default. To enforce a schema, install another
validator on ``app.state.validator``; it may raise ``errors.BadRequest``.
"""

from typing import Protocol


class DocumentValidator(Protocol):
    def validate(self, collection: str, document: dict) -> dict: ...


class PassthroughValidator:
    """Accepts any mapping unchanged."""

    def validate(self, collection: str, document: dict) -> dict:
        return dict(document)
