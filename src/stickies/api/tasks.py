"""Task endpoints: typed extraction, listing, and per-task CRUD."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from stickies.api.deps import get_service, require_user
from stickies.service import StickiesService

router = APIRouter()


class TextIn(BaseModel):
    text: str = ""


class TaskPatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    completed: bool | None = None
    title: str | None = None
    description: str | None = None
    type: Literal["task", "reminder", "note"] | None = None
    priority: Literal["low", "medium", "high"] | None = None
    due_date: datetime | None = Field(default=None, alias="dueDate")


@router.post("/tasks/from-text")
def tasks_from_text(
    body: TextIn,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    ingestion_id, tasks = service.tasks_from_text(owner_id, body.text)
    return {
        "ingestionId": ingestion_id,
        "tasksCreated": len(tasks),
        "tasks": [t.to_dict() for t in tasks],
    }


@router.get("/tasks")
def list_tasks(
    completed: bool | None = None,
    type: Literal["task", "reminder", "note"] | None = None,
    priority: Literal["low", "medium", "high"] | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    tasks = service.list_tasks(
        owner_id, completed=completed, type=type, priority=priority, limit=limit, offset=offset
    )
    return {"tasks": [t.to_dict() for t in tasks], "count": len(tasks)}


@router.get("/tasks/{ingestion_id}")
def tasks_for_ingestion(
    ingestion_id: str,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    tasks = service.list_tasks(owner_id, ingestion_id=ingestion_id, limit=500)
    return {"ingestionId": ingestion_id, "tasks": [t.to_dict() for t in tasks]}


@router.get("/task/{task_id}")
def get_task(
    task_id: str,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    return {"task": service.get_task(owner_id, task_id).to_dict()}


@router.patch("/task/{task_id}")
def update_task(
    task_id: str,
    body: TaskPatch,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    """Toggle completion (``{"completed": true}``) and/or edit fields."""
    changes = body.model_dump(exclude_unset=True)
    completed = changes.pop("completed", None)
    task = service.update_task(owner_id, task_id, completed=completed, **changes)
    return {"task": task.to_dict()}


@router.delete("/task/{task_id}")
def delete_task(
    task_id: str,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    service.delete_task(owner_id, task_id)
    return {"success": True, "message": "Task deleted"}
