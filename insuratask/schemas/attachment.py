from pydantic import BaseModel
from typing import Optional


class AttachmentResponse(BaseModel):
    filename: str
    originalname: Optional[str] = None
    mimetype: Optional[str] = None
    size: Optional[int] = None
    task_id: Optional[str] = None
    description: str = ""
    uploaded_at: Optional[str] = None
