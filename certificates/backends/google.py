# certificates/backends/google.py
"""
Google Workspace certificate backend (Drive + Docs).

Institution.certificate_template is a Google Docs document id and
Institution.certificate_folder a Drive folder id. The service account
impersonates GOOGLE_WORKSPACE_ADMIN_EMAIL (domain-wide delegation) when set.
"""

import json
import logging
import os

from django.conf import settings

from certificates.backends import CertificateDocumentBackend, DocumentServiceError

logger = logging.getLogger(__name__)

SCOPES = [
    'https://www.googleapis.com/auth/drive',
    'https://www.googleapis.com/auth/documents',
]

PDF_MIME_TYPE = 'application/pdf'


class GoogleWorkspaceBackend(CertificateDocumentBackend):

    def __init__(self, service_account_key=None, admin_email=None, timeout=None):
        self.service_account_key = service_account_key or settings.GOOGLE_SERVICE_ACCOUNT_KEY
        self.admin_email = admin_email if admin_email is not None else settings.GOOGLE_WORKSPACE_ADMIN_EMAIL
        self.timeout = timeout or settings.CERTIFICATE_EXTERNAL_TIMEOUT
        self._drive = None
        self._docs = None

    # =========================================================================
    # CLIENTS
    # =========================================================================

    def _credentials(self):
        from google.oauth2 import service_account

        key = (self.service_account_key or '').strip()
        if not key:
            raise DocumentServiceError("GOOGLE_SERVICE_ACCOUNT_KEY is not configured")

        try:
            if key.startswith('{'):
                credentials = service_account.Credentials.from_service_account_info(
                    json.loads(key), scopes=SCOPES
                )
            elif os.path.exists(key):
                credentials = service_account.Credentials.from_service_account_file(key, scopes=SCOPES)
            else:
                raise DocumentServiceError("GOOGLE_SERVICE_ACCOUNT_KEY is neither JSON nor a key file path")
        except (ValueError, KeyError) as e:
            raise DocumentServiceError(f"Invalid service account key: {e}") from e

        if self.admin_email:
            credentials = credentials.with_subject(self.admin_email)
        return credentials

    def _build(self, service, version):
        import httplib2
        from google_auth_httplib2 import AuthorizedHttp
        from googleapiclient.discovery import build

        http = AuthorizedHttp(self._credentials(), http=httplib2.Http(timeout=self.timeout))
        return build(service, version, http=http, cache_discovery=False)

    @property
    def drive(self):
        if self._drive is None:
            self._drive = self._build('drive', 'v3')
        return self._drive

    @property
    def docs(self):
        if self._docs is None:
            self._docs = self._build('docs', 'v1')
        return self._docs

    def _execute(self, request, action):
        import httplib2
        from googleapiclient.errors import Error as GoogleApiError

        try:
            return request.execute(num_retries=2)
        except (GoogleApiError, httplib2.HttpLib2Error, OSError) as e:
            logger.error(f"Google API {action} failed: {e}")
            raise DocumentServiceError(f"Google API {action} failed: {e}") from e

    def _find_by_name(self, name, folder):
        """Ids of non-trashed files with exactly this name (in folder, if given)."""
        escaped = name.replace('\\', '\\\\').replace("'", "\\'")
        query = f"name='{escaped}' and trashed=false"
        if folder:
            query += f" and '{folder}' in parents"
        result = self._execute(
            self.drive.files().list(
                q=query,
                fields='files(id)',
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
            ),
            'files.list',
        )
        return [f['id'] for f in result.get('files', [])]

    # =========================================================================
    # BACKEND API
    # =========================================================================

    def copy_template(self, template_ref, name, folder=''):
        # Replace a working copy left behind by an earlier attempt
        for file_id in self._find_by_name(name, folder):
            self._execute(self.drive.files().delete(fileId=file_id, supportsAllDrives=True), 'files.delete')

        body = {'name': name}
        if folder:
            body['parents'] = [folder]
        copied = self._execute(
            self.drive.files().copy(fileId=template_ref, body=body, fields='id', supportsAllDrives=True),
            'files.copy',
        )
        return copied['id']

    def merge_fields(self, document_id, replacements):
        requests = [
            {
                'replaceAllText': {
                    'containsText': {'text': f"{{{{{key}}}}}", 'matchCase': True},
                    'replaceText': value,
                }
            }
            for key, value in replacements.items()
        ]
        self._execute(
            self.docs.documents().batchUpdate(documentId=document_id, body={'requests': requests}),
            'documents.batchUpdate',
        )

    def export_pdf(self, document_id):
        content = self._execute(
            self.drive.files().export(fileId=document_id, mimeType=PDF_MIME_TYPE),
            'files.export',
        )
        if not content:
            raise DocumentServiceError(f"Empty PDF export for {document_id}")
        return content

    def upload_pdf(self, name, content, folder=''):
        from googleapiclient.http import MediaInMemoryUpload

        media = MediaInMemoryUpload(content, mimetype=PDF_MIME_TYPE)
        existing = self._find_by_name(name, folder)
        if existing:
            self._execute(
                self.drive.files().update(fileId=existing[0], media_body=media, supportsAllDrives=True),
                'files.update',
            )
            return existing[0]

        body = {'name': name, 'mimeType': PDF_MIME_TYPE}
        if folder:
            body['parents'] = [folder]
        created = self._execute(
            self.drive.files().create(body=body, media_body=media, fields='id', supportsAllDrives=True),
            'files.create',
        )
        return created['id']

    def grant_public_read(self, file_id):
        self._execute(
            self.drive.permissions().create(
                fileId=file_id,
                body={'role': 'reader', 'type': 'anyone'},
                supportsAllDrives=True,
            ),
            'permissions.create',
        )

    def file_url(self, file_id):
        return f"https://drive.google.com/file/d/{file_id}/view"
