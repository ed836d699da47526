# certificates/backends/docx_storage.py
"""
DOCX certificate backend.

Templates are .docx files kept in the certificate storage alias (local
media in development, S3 in production). Placeholders are filled with
python-docx, the document is converted to PDF by a headless LibreOffice,
and the PDF is written back to the same storage.

Institution.certificate_template is the storage path of the template and
Institution.certificate_folder the storage folder that receives working
copies and PDFs.
"""

import io
import logging
import posixpath
import subprocess
import tempfile
from pathlib import Path

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import storages
from docx import Document

from certificates.backends import CertificateDocumentBackend, DocumentServiceError

logger = logging.getLogger(__name__)


def _replace_in_paragraph(paragraph, replacements):
    """
    Replace placeholders in one paragraph.

    Placeholders inside a single run are replaced in place so formatting is
    kept. A placeholder split across runs is handled by joining the
    paragraph text into the first run (keeps style of first run).
    """
    if not any(key in paragraph.text for key in replacements):
        return

    for run in paragraph.runs:
        for key, value in replacements.items():
            if key in run.text:
                run.text = run.text.replace(key, value)

    text = paragraph.text
    if not any(key in text for key in replacements):
        return

    for key, value in replacements.items():
        text = text.replace(key, value)
    runs = paragraph.runs
    if not runs:
        return
    runs[0].text = text
    for run in runs[1:]:
        run.text = ''


def _replace_in_tables(tables, replacements):
    for table in tables:
        for row in table.rows:
            for cell in row.cells:
                for paragraph in cell.paragraphs:
                    _replace_in_paragraph(paragraph, replacements)
                _replace_in_tables(cell.tables, replacements)


def fill_placeholders(document, replacements):
    """
    Replace every occurrence of each placeholder in body, tables, headers
    and footers. `replacements` maps the literal placeholder text
    (e.g. '{{Name}}') to its value.
    """
    for paragraph in document.paragraphs:
        _replace_in_paragraph(paragraph, replacements)
    _replace_in_tables(document.tables, replacements)

    for section in document.sections:
        for part in (section.header, section.footer):
            for paragraph in part.paragraphs:
                _replace_in_paragraph(paragraph, replacements)
            _replace_in_tables(part.tables, replacements)


class DocxStorageBackend(CertificateDocumentBackend):

    def __init__(self, storage=None, soffice=None, timeout=None):
        self.storage = storage if storage is not None else storages[settings.CERTIFICATE_STORAGE_ALIAS]
        self.soffice = soffice or settings.LIBREOFFICE_BINARY
        self.timeout = timeout or settings.CERTIFICATE_EXTERNAL_TIMEOUT

    # =========================================================================
    # STORAGE HELPERS
    # =========================================================================

    @staticmethod
    def _path(folder, *parts):
        return posixpath.join(folder, *parts) if folder else posixpath.join(*parts)

    def _read(self, path):
        try:
            with self.storage.open(path, 'rb') as fh:
                return fh.read()
        except (OSError, ValueError) as e:
            raise DocumentServiceError(f"Could not read {path}: {e}") from e

    def _write(self, path, content):
        """Write `content` at exactly `path`, replacing any existing file."""
        try:
            if self.storage.exists(path):
                self.storage.delete(path)
            saved = self.storage.save(path, ContentFile(content))
        except (OSError, ValueError) as e:
            raise DocumentServiceError(f"Could not write {path}: {e}") from e
        if saved != path:
            logger.warning(f"Storage saved {path} as {saved}")
        return saved

    # =========================================================================
    # BACKEND API
    # =========================================================================

    def copy_template(self, template_ref, name, folder=''):
        if not self.storage.exists(template_ref):
            raise DocumentServiceError(f"Certificate template not found: {template_ref}")
        content = self._read(template_ref)
        return self._write(self._path(folder, 'working', f"{name}.docx"), content)

    def merge_fields(self, document_id, replacements):
        try:
            document = Document(io.BytesIO(self._read(document_id)))
        except DocumentServiceError:
            raise
        except Exception as e:
            raise DocumentServiceError(f"Could not open {document_id} as .docx: {e}") from e

        fill_placeholders(document, {f"{{{{{key}}}}}": value for key, value in replacements.items()})

        buffer = io.BytesIO()
        document.save(buffer)
        self._write(document_id, buffer.getvalue())

    def export_pdf(self, document_id):
        content = self._read(document_id)

        with tempfile.TemporaryDirectory() as tmpdir:
            source = Path(tmpdir) / 'certificate.docx'
            source.write_bytes(content)
            command = [
                self.soffice, '--headless', '--norestore',
                '--convert-to', 'pdf', '--outdir', tmpdir, str(source),
            ]
            try:
                subprocess.run(command, check=True, capture_output=True, timeout=self.timeout)
            except subprocess.TimeoutExpired as e:
                raise DocumentServiceError(f"PDF conversion timed out after {self.timeout}s") from e
            except subprocess.CalledProcessError as e:
                stderr = (e.stderr or b'').decode('utf-8', 'replace').strip()
                raise DocumentServiceError(f"PDF conversion failed: {stderr or e}") from e
            except OSError as e:
                raise DocumentServiceError(f"Could not run {self.soffice}: {e}") from e

            pdf = source.with_suffix('.pdf')
            if not pdf.exists():
                raise DocumentServiceError("PDF conversion produced no output")
            return pdf.read_bytes()

    def upload_pdf(self, name, content, folder=''):
        return self._write(self._path(folder, name), content)

    def grant_public_read(self, file_id):
        # The certificate storage alias is configured public-read
        # (default_acl on S3, served media locally), so only check the file exists.
        if not self.storage.exists(file_id):
            raise DocumentServiceError(f"Uploaded certificate missing: {file_id}")

    def file_url(self, file_id):
        return self.storage.url(file_id)
