"""PDF report endpoint."""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from faae_core import crud, schemas, models
from faae_core.api.dependencies import get_current_user
from faae_core.config import get_settings
from faae_core.database import get_db
from faae_core.report_pdf import render_report_pdf

logger = logging.getLogger("faae-core.reports")

router = APIRouter(tags=["reports"])


@router.post(
    "/",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}, "description": "Rendered PDF report"}},
)
def generate_report(
    request: schemas.ReportRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Render a PDF report of the tasks matching a filter.

    - **filter**: date_from, date_to, priority, status, user_id, project_id, search_text (all optional)
    - **export_timestamp**: Printed on the cover and used for the file name (defaults to now)
    """
    settings = get_settings()
    exported_at = request.export_timestamp or datetime.utcnow()
    document = crud.generate_report(db, request.filter, exported_at, settings.report_company_name)
    pdf = render_report_pdf(document)
    logger.info(f"User {current_user.id} exported {document.filename}")
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
    )
