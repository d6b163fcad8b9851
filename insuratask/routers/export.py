import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from insuratask.core.database import get_db
from insuratask.schemas.export import ExportRequest, ExportPreviewRequest, ExportPreviewResponse
from insuratask.services import task_service, export_service, report_generator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/export", tags=["export"])

MEDIA_TYPES = {
    "pdf": "application/pdf",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
EXTENSIONS = {"pdf": "pdf", "excel": "xlsx"}


@router.post("")
def export_tasks(request: ExportRequest, db: Session = Depends(get_db)):
    tasks = export_service.filter_tasks(task_service.get_tasks(db), request.filters.model_dump())
    data = {
        "tasks": tasks,
        "stats": export_service.generate_stats(tasks),
        "include_stats": request.include_stats,
        "title": request.title,
        "generated_at": datetime.now(),
    }

    if request.format == "pdf":
        content = report_generator.generate_pdf(data)
    else:
        content = report_generator.generate_excel(data)

    filename = f"insuratask-report-{date.today().isoformat()}.{EXTENSIONS[request.format]}"
    logger.info(f"Export {request.format}: {len(tasks)} tasks, {len(content)} bytes")
    return Response(
        content=content,
        media_type=MEDIA_TYPES[request.format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.post("/preview", response_model=ExportPreviewResponse)
def preview(request: ExportPreviewRequest, db: Session = Depends(get_db)):
    tasks = export_service.filter_tasks(task_service.get_tasks(db), request.filters.model_dump())
    return {
        "tasks_count": len(tasks),
        "stats": export_service.generate_stats(tasks),
        "sample_tasks": tasks[:5],
    }
