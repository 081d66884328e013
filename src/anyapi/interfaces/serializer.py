"""Conversion contract between canonical model objects and stored documents."""

import json
from abc import ABC, abstractmethod
from typing import TypeVar, Generic

from anyapi.exceptions import AnyApiSerializerValidationError

T = TypeVar('T')

class Serializer(ABC, Generic[T]):
    """REQUIRED
    Converts one canonical model type to and from plain documents.

    Registrations, endpoints, auth variants, secret references and the
    engine configuration each have a serializer. A document is a
    JSON-compatible dictionary: it is what a registration store persists
    and what the auth registry dispatches on by ``auth_type``.
    """

    @abstractmethod
    def validate_dict(self, obj: dict) -> T:
        """REQUIRED
        Build the model object a document describes.

        Args:
            obj: The document.

        Returns:
            The model object.

        Raises:
            AnyApiSerializerValidationError: If the document is not valid.
        """
        pass

    @abstractmethod
    def to_dict(self, obj: T) -> dict:
        """REQUIRED
        Produce the document for a model object.

        Args:
            obj: The model object.

        Returns:
            A JSON-compatible dictionary.
        """
        pass

    def to_json(self, obj: T) -> str:
        return json.dumps(self.to_dict(obj), separators=(",", ":"))

    def validate_json(self, text: str) -> T:
        """Validate a document kept as JSON text."""
        try:
            document = json.loads(text)
        except ValueError as e:
            raise AnyApiSerializerValidationError(f"Stored document is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise AnyApiSerializerValidationError(
                f"Stored document must be a JSON object, got {type(document).__name__}"
            )
        return self.validate_dict(document)

    def copy(self, obj: T) -> T:
        """REQUIRED
        Detached copy of a model object, made through its document form."""
        return self.validate_dict(self.to_dict(obj))
