"""
Tests for the Google Workspace certificate backend, with the Drive and
Docs clients mocked.
"""

from unittest.mock import MagicMock

import httplib2
import pytest

from certificates.backends import DocumentServiceError
from certificates.backends.google import PDF_MIME_TYPE, GoogleWorkspaceBackend


@pytest.fixture
def backend():
    backend = GoogleWorkspaceBackend(service_account_key='{}', admin_email='', timeout=5)
    backend._drive = MagicMock()
    backend._docs = MagicMock()
    backend._drive.files.return_value.list.return_value.execute.return_value = {'files': []}
    return backend


def files(backend):
    return backend._drive.files.return_value


class TestGoogleWorkspaceBackend:

    def test_copy_template(self, backend):
        """The template is copied into the folder under the given name."""
        files(backend).copy.return_value.execute.return_value = {'id': 'doc-123'}

        document_id = backend.copy_template('tmpl-1', 'certificate-abc', 'folder-9')

        assert document_id == 'doc-123'
        kwargs = files(backend).copy.call_args.kwargs
        assert kwargs['fileId'] == 'tmpl-1'
        assert kwargs['body'] == {'name': 'certificate-abc', 'parents': ['folder-9']}
        files(backend).delete.assert_not_called()

    def test_copy_template_replaces_existing(self, backend):
        """A working copy left by an earlier attempt is deleted first."""
        files(backend).list.return_value.execute.return_value = {'files': [{'id': 'old-doc'}]}
        files(backend).copy.return_value.execute.return_value = {'id': 'doc-123'}

        backend.copy_template('tmpl-1', 'certificate-abc', 'folder-9')

        assert files(backend).delete.call_args.kwargs['fileId'] == 'old-doc'
        query = files(backend).list.call_args.kwargs['q']
        assert "name='certificate-abc'" in query
        assert "'folder-9' in parents" in query

    def test_merge_fields(self, backend):
        """Each key becomes a case-sensitive replaceAllText request."""
        backend.merge_fields('doc-123', {'STUDENT_NAME': 'Asha Rao', 'GRADE': ''})

        kwargs = backend._docs.documents.return_value.batchUpdate.call_args.kwargs
        assert kwargs['documentId'] == 'doc-123'
        assert kwargs['body']['requests'] == [
            {'replaceAllText': {'containsText': {'text': '{{STUDENT_NAME}}', 'matchCase': True},
                                'replaceText': 'Asha Rao'}},
            {'replaceAllText': {'containsText': {'text': '{{GRADE}}', 'matchCase': True},
                                'replaceText': ''}},
        ]

    def test_export_pdf(self, backend):
        """The document is exported through Drive as PDF."""
        files(backend).export.return_value.execute.return_value = b'%PDF-1.4'

        assert backend.export_pdf('doc-123') == b'%PDF-1.4'
        assert files(backend).export.call_args.kwargs == {'fileId': 'doc-123', 'mimeType': PDF_MIME_TYPE}

    def test_export_pdf_empty(self, backend):
        """An empty export is an error."""
        files(backend).export.return_value.execute.return_value = b''

        with pytest.raises(DocumentServiceError):
            backend.export_pdf('doc-123')

    def test_upload_pdf_creates(self, backend):
        """A new PDF is created in the folder."""
        files(backend).create.return_value.execute.return_value = {'id': 'pdf-1'}

        file_id = backend.upload_pdf('certificate-abc.pdf', b'%PDF', 'folder-9')

        assert file_id == 'pdf-1'
        body = files(backend).create.call_args.kwargs['body']
        assert body == {'name': 'certificate-abc.pdf', 'mimeType': PDF_MIME_TYPE, 'parents': ['folder-9']}

    def test_upload_pdf_updates_existing(self, backend):
        """An existing PDF with the same name is updated in place."""
        files(backend).list.return_value.execute.return_value = {'files': [{'id': 'pdf-old'}]}

        file_id = backend.upload_pdf('certificate-abc.pdf', b'%PDF', 'folder-9')

        assert file_id == 'pdf-old'
        assert files(backend).update.call_args.kwargs['fileId'] == 'pdf-old'
        files(backend).create.assert_not_called()

    def test_grant_public_read(self, backend):
        """Anyone with the link may read."""
        backend.grant_public_read('pdf-1')

        kwargs = backend._drive.permissions.return_value.create.call_args.kwargs
        assert kwargs['fileId'] == 'pdf-1'
        assert kwargs['body'] == {'role': 'reader', 'type': 'anyone'}

    def test_file_url(self, backend):
        assert backend.file_url('pdf-1') == 'https://drive.google.com/file/d/pdf-1/view'

    @pytest.mark.parametrize('error', [TimeoutError('timed out'), httplib2.HttpLib2Error('boom')])
    def test_transport_errors(self, backend, error):
        """Transport failures become DocumentServiceError."""
        files(backend).copy.return_value.execute.side_effect = error

        with pytest.raises(DocumentServiceError):
            backend.copy_template('tmpl-1', 'certificate-abc', 'folder-9')

    def test_missing_key(self, settings):
        """Building clients without a service account key fails cleanly."""
        settings.GOOGLE_SERVICE_ACCOUNT_KEY = ''
        backend = GoogleWorkspaceBackend(timeout=5)

        with pytest.raises(DocumentServiceError):
            backend.drive
