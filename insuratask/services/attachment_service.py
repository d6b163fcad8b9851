"""File attachments stored on disk, with a JSON metadata sidecar per file"""

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional

from insuratask.core.config import settings
from insuratask.core.errors import AttachmentError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
)

CHUNK_SIZE = 1024 * 1024


class AttachmentStore:
    def __init__(self, upload_dir: Optional[str] = None, max_bytes: Optional[int] = None):
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR).expanduser()
        self.meta_dir = self.upload_dir / "metadata"
        self.max_bytes = max_bytes or settings.MAX_UPLOAD_BYTES

    def _ensure_dirs(self) -> None:
        self.meta_dir.mkdir(parents=True, exist_ok=True)

    def _file_path(self, filename: str) -> Path:
        # Stored names are flat: reject anything that could leave the upload dir
        if not filename or "/" in filename or "\\" in filename or filename.startswith(".") or filename == "metadata":
            raise AttachmentError("Invalid file name")
        return self.upload_dir / filename

    def _meta_path(self, filename: str) -> Path:
        return self.meta_dir / f"{filename}.json"

    def save(
        self,
        source: BinaryIO,
        original_name: str,
        mimetype: str,
        task_id: Optional[str] = None,
        description: Optional[str] = None
    ) -> Dict[str, Any]:
        if mimetype not in ALLOWED_MIME_TYPES:
            raise AttachmentError("File type not allowed")

        self._ensure_dirs()
        safe_name = Path(original_name or "file").name.replace(" ", "_") or "file"
        filename = f"{int(time.time() * 1000)}-{safe_name}"
        path = self._file_path(filename)

        size = 0
        with open(path, "wb") as out:
            while True:
                chunk = source.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_bytes:
                    out.close()
                    path.unlink()
                    raise AttachmentError(f"File too large (max {self.max_bytes} bytes)")
                out.write(chunk)

        meta = {
            "filename": filename,
            "originalname": original_name,
            "mimetype": mimetype,
            "size": size,
            "task_id": str(task_id) if task_id not in (None, "") else None,
            "description": description or "",
            "uploaded_at": datetime.utcnow().isoformat(),
        }
        self._meta_path(filename).write_text(json.dumps(meta), encoding="utf-8")
        logger.info(f"Attachment {filename} stored ({size} bytes)")
        return meta

    def get_path(self, filename: str) -> Optional[Path]:
        path = self._file_path(filename)
        return path if path.is_file() else None

    def get_meta(self, filename: str) -> Dict[str, Any]:
        meta_path = self._meta_path(filename)
        if meta_path.is_file():
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            meta["filename"] = filename
            return meta
        return {"filename": filename}

    def list(self, task_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if not self.upload_dir.is_dir():
            return []
        files = [
            self.get_meta(entry.name)
            for entry in sorted(self.upload_dir.iterdir())
            if entry.is_file() and entry.name != "metadata"
        ]
        if task_id:
            files = [f for f in files if f.get("task_id") == str(task_id)]
        return files

    def delete(self, filename: str) -> bool:
        deleted = False
        path = self._file_path(filename)
        if path.is_file():
            path.unlink()
            deleted = True
        meta_path = self._meta_path(filename)
        if meta_path.is_file():
            meta_path.unlink()
            deleted = True
        if deleted:
            logger.info(f"Attachment {filename} deleted")
        return deleted
