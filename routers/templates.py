"""
Router for read-only template lookup.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from dependencies import get_scheduler
from exceptions import NotFound
from scheduler import JobScheduler
from schemas import Template


router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=List[Template])
def list_templates(scheduler: JobScheduler = Depends(get_scheduler)):
    if scheduler.template_store is None:
        return []
    return scheduler.template_store.list()


@router.get("/{template_id}", response_model=Template)
def get_template(template_id: str, scheduler: JobScheduler = Depends(get_scheduler)):
    if scheduler.template_store is None:
        raise HTTPException(status_code=404, detail="Template not found.")
    try:
        return scheduler.template_store.get(template_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Template not found.")
