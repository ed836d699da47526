"""
Tests for the DOCX + storage certificate backend.
"""

import io
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
from django.core.files.base import ContentFile
from django.core.files.storage import InMemoryStorage
from docx import Document

from certificates.backends import DocumentServiceError, get_document_backend
from certificates.backends.docx_storage import DocxStorageBackend, fill_placeholders

TEMPLATE = 'templates/acme-certificate.docx'


def build_template():
    document = Document()
    split = document.add_paragraph()
    split.add_run('Awarded to {{STU')
    split.add_run('DENT_NAME}}')
    document.add_paragraph('for completing {{COURSE_NAME}} on {{ISSUE_DATE}}.')
    table = document.add_table(rows=1, cols=2)
    table.cell(0, 0).text = 'Certificate'
    table.cell(0, 1).text = '{{CERTIFICATE_ID}}'
    document.sections[0].header.paragraphs[0].text = '{{INSTITUTION_NAME}}'
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def load(storage, path):
    with storage.open(path, 'rb') as fh:
        return Document(io.BytesIO(fh.read()))


def all_text(document):
    parts = [p.text for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            parts.extend(cell.text for cell in row.cells)
    parts.extend(p.text for p in document.sections[0].header.paragraphs)
    return '\n'.join(parts)


@pytest.fixture
def storage():
    storage = InMemoryStorage(base_url='https://media.example.com/')
    storage.save(TEMPLATE, ContentFile(build_template()))
    return storage


@pytest.fixture
def backend(storage):
    return DocxStorageBackend(storage=storage, soffice='soffice', timeout=5)


class TestFillPlaceholders:
    """Placeholder replacement in python-docx documents."""

    def test_replaces_everywhere(self):
        """Body, split runs, tables and headers are all filled."""
        document = Document(io.BytesIO(build_template()))

        fill_placeholders(document, {
            '{{STUDENT_NAME}}': 'Asha Rao',
            '{{COURSE_NAME}}': 'Data Structures',
            '{{ISSUE_DATE}}': '5 March 2024',
            '{{CERTIFICATE_ID}}': 'ACME-2024-7QK2M',
            '{{INSTITUTION_NAME}}': 'Acme Academy',
        })

        text = all_text(document)
        assert '{{' not in text
        assert 'Awarded to Asha Rao' in text
        assert 'for completing Data Structures on 5 March 2024.' in text
        assert 'ACME-2024-7QK2M' in text
        assert 'Acme Academy' in text

    def test_every_occurrence(self):
        """Repeated placeholders are all replaced."""
        document = Document()
        document.add_paragraph('{{GRADE}} / {{GRADE}}')

        fill_placeholders(document, {'{{GRADE}}': 'A'})

        assert document.paragraphs[0].text == 'A / A'

    def test_case_sensitive(self):
        """Only the exact placeholder text matches."""
        document = Document()
        document.add_paragraph('{{grade}}')

        fill_placeholders(document, {'{{GRADE}}': 'A'})

        assert document.paragraphs[0].text == '{{grade}}'


class TestDocxStorageBackend:
    """Storage-backed backend operations."""

    def test_copy_template(self, backend, storage):
        """The template is copied into the folder's working area."""
        document_id = backend.copy_template(TEMPLATE, 'certificate-abc', 'acme')

        assert document_id == 'acme/working/certificate-abc.docx'
        assert storage.exists(document_id)

    def test_copy_template_overwrites(self, backend, storage):
        """Copying twice keeps a single working copy at the same path."""
        first = backend.copy_template(TEMPLATE, 'certificate-abc', 'acme')
        second = backend.copy_template(TEMPLATE, 'certificate-abc', 'acme')

        assert first == second
        _, files = storage.listdir('acme/working')
        assert files == ['certificate-abc.docx']

    def test_missing_template(self, backend):
        """A template path that does not exist is a document service error."""
        with pytest.raises(DocumentServiceError):
            backend.copy_template('templates/missing.docx', 'certificate-abc', 'acme')

    def test_merge_fields(self, backend, storage):
        """Keys are wrapped as {{KEY}} and written back to the working copy."""
        document_id = backend.copy_template(TEMPLATE, 'certificate-abc', 'acme')

        backend.merge_fields(document_id, {
            'STUDENT_NAME': 'Asha Rao',
            'COURSE_NAME': 'Data Structures',
            'ISSUE_DATE': '5 March 2024',
            'CERTIFICATE_ID': 'ACME-2024-7QK2M',
            'INSTITUTION_NAME': 'Acme Academy',
        })

        text = all_text(load(storage, document_id))
        assert 'Asha Rao' in text
        assert '{{' not in text

    def test_merge_fields_not_docx(self, backend, storage):
        """A working copy that is not a .docx raises DocumentServiceError."""
        storage.save('acme/working/broken.docx', ContentFile(b'not a zip'))

        with pytest.raises(DocumentServiceError):
            backend.merge_fields('acme/working/broken.docx', {'STUDENT_NAME': 'x'})

    def test_upload_and_url(self, backend, storage):
        """Uploads land in the folder and overwrite an earlier upload."""
        backend.upload_pdf('certificate-abc.pdf', b'%PDF-old', 'acme')
        file_id = backend.upload_pdf('certificate-abc.pdf', b'%PDF-new', 'acme')

        assert file_id == 'acme/certificate-abc.pdf'
        with storage.open(file_id, 'rb') as fh:
            assert fh.read() == b'%PDF-new'
        backend.grant_public_read(file_id)
        assert backend.file_url(file_id) == 'https://media.example.com/acme/certificate-abc.pdf'

    def test_grant_public_read_missing_file(self, backend):
        """Granting access to a file that was never uploaded fails."""
        with pytest.raises(DocumentServiceError):
            backend.grant_public_read('acme/nothing.pdf')

    def test_export_pdf(self, backend):
        """LibreOffice is invoked headless and its PDF output is returned."""
        document_id = backend.copy_template(TEMPLATE, 'certificate-abc', 'acme')

        def fake_convert(command, **kwargs):
            outdir = command[command.index('--outdir') + 1]
            Path(outdir, 'certificate.pdf').write_bytes(b'%PDF-1.7 converted')
            return subprocess.CompletedProcess(command, 0)

        with patch('certificates.backends.docx_storage.subprocess.run', side_effect=fake_convert) as run:
            pdf = backend.export_pdf(document_id)

        assert pdf == b'%PDF-1.7 converted'
        command = run.call_args.args[0]
        assert command[:2] == ['soffice', '--headless']
        assert run.call_args.kwargs['timeout'] == 5
        assert run.call_args.kwargs['check'] is True

    @pytest.mark.parametrize('error', [
        subprocess.CalledProcessError(1, 'soffice', stderr=b'conversion failed'),
        subprocess.TimeoutExpired('soffice', 5),
        FileNotFoundError('soffice'),
    ])
    def test_export_pdf_errors(self, backend, error):
        """Conversion failures surface as DocumentServiceError."""
        document_id = backend.copy_template(TEMPLATE, 'certificate-abc', 'acme')

        with patch('certificates.backends.docx_storage.subprocess.run', side_effect=error):
            with pytest.raises(DocumentServiceError):
                backend.export_pdf(document_id)

    def test_export_pdf_without_output(self, backend):
        """A conversion that writes nothing is an error."""
        document_id = backend.copy_template(TEMPLATE, 'certificate-abc', 'acme')

        with patch('certificates.backends.docx_storage.subprocess.run'):
            with pytest.raises(DocumentServiceError):
                backend.export_pdf(document_id)


def test_get_document_backend_from_settings(settings):
    """The configured dotted path is instantiated."""
    settings.CERTIFICATE_DOCUMENT_BACKEND = 'certificates.tests.fakes.FakeDocumentBackend'

    backend = get_document_backend()

    assert type(backend).__name__ == 'FakeDocumentBackend'
