from fastapi import APIRouter, File, Request, UploadFile, status
from fastapi.responses import FileResponse
from typing import Annotated, List
import logging

from deps import AuditDep, CurrentUserDep, DocumentsDep, SessionDep, SettingsDep
from document_service import IncomingFile
from exceptions import OnboardingError
from schemas import DocumentListResponse, DocumentOut, SignedUrlResponse

documents_router = APIRouter(prefix="/documents", tags=["documents"])
log = logging.getLogger(__name__)


@documents_router.post(
    "/customers/{customer_id}/documents",
    status_code=status.HTTP_201_CREATED,
    response_model=DocumentListResponse,
)
async def upload_documents(
    customer_id: int,
    db_session: SessionDep,
    current_user: CurrentUserDep,
    documents: DocumentsDep,
    audit: AuditDep,
    request: Request,
    files: Annotated[List[UploadFile], File()],
):
    """
    Upload one or more identity documents (PDF, PNG or JPEG) for a customer.
    """
    incoming = [
        IncomingFile(
            filename=upload.filename or "document",
            content_type=upload.content_type or "application/octet-stream",
            content=await upload.read(),
        )
        for upload in files
    ]
    try:
        stored = await documents.upload(db_session, current_user, customer_id, incoming)
    except OnboardingError as e:
        await audit.log_action("UPLOAD_DOCUMENTS", "DOCUMENT", customer_id, result="FAILURE", details=e.message, user=current_user, request=request)
        raise
    await audit.log_action("UPLOAD_DOCUMENTS", "DOCUMENT", customer_id, details=f"Uploaded {len(stored)} files", user=current_user, request=request)
    return DocumentListResponse(documents=[DocumentOut.model_validate(doc) for doc in stored])


@documents_router.get("/customers/{customer_id}/documents", response_model=DocumentListResponse)
async def list_documents(customer_id: int, db_session: SessionDep, current_user: CurrentUserDep, documents: DocumentsDep):
    stored = await documents.list_for_customer(db_session, current_user, customer_id)
    return DocumentListResponse(documents=[DocumentOut.model_validate(doc) for doc in stored])


@documents_router.get("/{document_id}/signed-url", response_model=SignedUrlResponse)
async def get_signed_url(
    document_id: int,
    db_session: SessionDep,
    current_user: CurrentUserDep,
    documents: DocumentsDep,
    app_settings: SettingsDep,
    request: Request,
):
    url = await documents.create_signed_url(db_session, current_user, document_id, str(request.base_url))
    return SignedUrlResponse(url=url, expiresIn=app_settings.DOCUMENT_URL_EXPIRE_SECONDS)


@documents_router.get("/download")
async def download_document(token: str, db_session: SessionDep, documents: DocumentsDep):
    """Serve a document to the holder of a valid signed link. No bearer token needed."""
    document = await documents.resolve_signed_token(db_session, token)
    return FileResponse(documents.resolve_path(document), media_type=document.mime_type, filename=document.file_name)
