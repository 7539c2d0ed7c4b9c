from __future__ import annotations


class CustomFieldError(Exception):
    pass


class FieldSourceError(CustomFieldError):
    """Definitions or stored values could not be retrieved."""


class FieldUploadError(CustomFieldError):
    """The upload collaborator did not return a usable file reference."""
