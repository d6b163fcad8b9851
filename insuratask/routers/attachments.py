from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form, Query
from fastapi.responses import FileResponse
from typing import List, Optional

from insuratask.core.errors import AttachmentError
from insuratask.schemas.attachment import AttachmentResponse
from insuratask.schemas.task import MessageResponse
from insuratask.services.attachment_service import AttachmentStore

router = APIRouter(prefix="/api/attachments", tags=["attachments"])


def get_attachment_store() -> AttachmentStore:
    return AttachmentStore()


@router.post("/upload", response_model=AttachmentResponse)
def upload(
    file: UploadFile = File(...),
    task_id: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    store: AttachmentStore = Depends(get_attachment_store)
):
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")
    return store.save(file.file, file.filename, file.content_type, task_id, description)


@router.get("", response_model=List[AttachmentResponse])
def list_attachments(
    task_id: Optional[str] = Query(None),
    store: AttachmentStore = Depends(get_attachment_store)
):
    return store.list(task_id)


@router.get("/{filename}")
def download(filename: str, store: AttachmentStore = Depends(get_attachment_store)):
    try:
        path = store.get_path(filename)
    except AttachmentError:
        path = None
    if path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    meta = store.get_meta(filename)
    return FileResponse(
        path,
        media_type=meta.get("mimetype") or "application/octet-stream",
        filename=meta.get("originalname") or filename
    )


@router.delete("/{filename}", response_model=MessageResponse)
def delete_attachment(filename: str, store: AttachmentStore = Depends(get_attachment_store)):
    try:
        deleted = store.delete(filename)
    except AttachmentError:
        deleted = False
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return {"message": "Attachment deleted"}
