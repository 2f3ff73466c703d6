"""
Document Service - customer document uploads, listing and signed download links
"""

import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

import auth_utils
import crud
from customer_service import CustomerService
from date_utils import utcnow
from exceptions import AuthenticationError, NotFoundError, ValidationError
from models import Document, User

log = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {"application/pdf", "image/png", "image/jpeg"}
SIGNED_URL_PURPOSE = "document-download"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class IncomingFile:
    filename: str
    content_type: str
    content: bytes


def sanitize_filename(filename: Optional[str]) -> str:
    """Strip directories and unsafe characters from a client supplied file name."""
    name = Path((filename or "").replace("\\", "/")).name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name[:200] or "document"


class DocumentService:
    """Service for storing customer documents on local disk"""

    def __init__(
        self,
        storage_dir: str,
        max_bytes: int,
        url_expire_seconds: int,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
    ):
        self.storage_dir = Path(storage_dir)
        self.max_bytes = max_bytes
        self.url_expire_seconds = url_expire_seconds
        self.secret_key = secret_key
        self.algorithm = algorithm

    def _validate(self, incoming: IncomingFile) -> None:
        if incoming.content_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(f"Invalid file type: {incoming.content_type}")
        if len(incoming.content) > self.max_bytes:
            limit_mb = self.max_bytes / 1024 / 1024
            raise ValidationError(f"File size exceeds {limit_mb:.0f}MB limit")
        if not incoming.content:
            raise ValidationError("Empty file")

    def resolve_path(self, document: Document) -> Path:
        return self.storage_dir / document.file_path

    async def upload(
        self,
        db: AsyncSession,
        user: User,
        customer_id: int,
        files: List[IncomingFile],
    ) -> List[Document]:
        """
        Validate every file first, then store each one under
        customer_<id>/<timestamp>_<name> with a metadata row.
        """
        if not files:
            raise ValidationError("No files uploaded")
        customer = await CustomerService.get_accessible(db, user, customer_id)
        for incoming in files:
            self._validate(incoming)

        customer_dir = self.storage_dir / f"customer_{customer.id}"
        customer_dir.mkdir(parents=True, exist_ok=True)

        documents = []
        for incoming in files:
            safe_name = sanitize_filename(incoming.filename)
            timestamp = utcnow().strftime("%Y%m%d%H%M%S%f")
            key = f"customer_{customer.id}/{timestamp}_{safe_name}"
            file_path = self.storage_dir / key

            with open(file_path, "wb") as f:
                f.write(incoming.content)

            try:
                document = await crud.create_document(
                    db,
                    customer_id=customer.id,
                    file_name=safe_name,
                    file_path=key,
                    file_size=len(incoming.content),
                    mime_type=incoming.content_type,
                    uploaded_by=user.id,
                )
            except Exception:
                file_path.unlink(missing_ok=True)
                raise
            documents.append(document)

        log.info(f"Stored {len(documents)} document(s) for customer {customer.id}")
        return documents

    async def list_for_customer(self, db: AsyncSession, user: User, customer_id: int) -> List[Document]:
        await CustomerService.get_accessible(db, user, customer_id)
        return await crud.get_customer_documents(db, customer_id)

    async def create_signed_url(self, db: AsyncSession, user: User, document_id: int, base_url: str) -> str:
        document = await crud.get_document(db, document_id)
        if document is None:
            raise NotFoundError("Document not found")
        await CustomerService.get_accessible(db, user, document.customer_id)

        token = auth_utils.create_access_token(
            {"doc": document.id, "purpose": SIGNED_URL_PURPOSE},
            expires_delta=timedelta(seconds=self.url_expire_seconds),
            secret_key=self.secret_key,
            algorithm=self.algorithm,
        )
        return f"{base_url.rstrip('/')}/api/documents/download?token={token}"

    async def resolve_signed_token(self, db: AsyncSession, token: str) -> Document:
        """Document behind a signed download token; AuthenticationError when invalid or expired."""
        payload = auth_utils.decode_access_token(token, secret_key=self.secret_key, algorithm=self.algorithm)
        if payload is None or payload.get("purpose") != SIGNED_URL_PURPOSE or not isinstance(payload.get("doc"), int):
            raise AuthenticationError("Invalid or expired download link")

        document = await crud.get_document(db, payload["doc"])
        if document is None or not self.resolve_path(document).is_file():
            raise NotFoundError("Document not found")
        return document
