"""Assisted task search endpoint."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from faae_core import crud, schemas, models
from faae_core.api.dependencies import get_assistant, get_current_user
from faae_core.database import get_db
from faae_core.search import SearchAssistant
from .tasks import task_to_response

logger = logging.getLogger("faae-core.search")

router = APIRouter(tags=["search"])


@router.post("/", response_model=schemas.SearchResponse)
def search_tasks(
    request: schemas.SearchRequest,
    db: Session = Depends(get_db),
    assistant: SearchAssistant = Depends(get_assistant),
    current_user: models.User = Depends(get_current_user),
):
    """
    Find tasks matching a free-text query, most relevant first.

    Uses the language model when configured, otherwise (or when it fails)
    keeps tasks containing any query word of three or more letters.
    """
    result = crud.search_tasks(db, request.query, assistant)
    return schemas.SearchResponse(
        query=request.query,
        source=result.source,
        tasks=[task_to_response(t) for t in result.tasks],
    )
