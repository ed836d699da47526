# certificates/backends/__init__.py
"""
Document backends used to render certificates.

A backend copies an institution's template, fills in the merge fields,
exports the result to PDF, uploads the PDF and makes it publicly readable.
Every method raises DocumentServiceError on failure.

Names passed to copy_template() and upload_pdf() are derived from the
enrollment, and backends replace an existing artifact with the same name
instead of creating a second one, so a retried issuance does not leave
orphaned documents behind.
"""

from django.conf import settings
from django.utils.module_loading import import_string


class DocumentServiceError(Exception):
    """An external document operation failed."""


class CertificateDocumentBackend:
    """Interface implemented by every certificate document backend."""

    def copy_template(self, template_ref: str, name: str, folder: str = '') -> str:
        """Copy the template to a working document. Returns its id."""
        raise NotImplementedError

    def merge_fields(self, document_id: str, replacements: dict) -> None:
        """Replace every `{{Key}}` placeholder with its value, exact text, all occurrences."""
        raise NotImplementedError

    def export_pdf(self, document_id: str) -> bytes:
        raise NotImplementedError

    def upload_pdf(self, name: str, content: bytes, folder: str = '') -> str:
        """Store the exported PDF. Returns a file id."""
        raise NotImplementedError

    def grant_public_read(self, file_id: str) -> None:
        raise NotImplementedError

    def file_url(self, file_id: str) -> str:
        raise NotImplementedError


def get_document_backend(path=None):
    """Instantiate the backend named by CERTIFICATE_DOCUMENT_BACKEND."""
    backend_class = import_string(path or settings.CERTIFICATE_DOCUMENT_BACKEND)
    return backend_class()
