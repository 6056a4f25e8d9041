"""JSON API routes: scrape triggers, job/task status, record listings, matching, stats."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from cpa_intel.matching.matcher import find_top_matches
from cpa_intel.matching.models import ClientProfile
from cpa_intel.scheduler import TaskRunner
from cpa_intel.scrapers.errors import UnknownSourceError
from cpa_intel.storage.database import MAX_PAGE_SIZE, IntelDatabase

from .dependencies import get_db, get_runner

logger = logging.getLogger("cpa_intel.web.api")

router = APIRouter(prefix="/api")


class ClientIn(BaseModel):
    required_services: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    remote_ok: bool = False
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    communication_style: Optional[str] = None
    business_size: Optional[str] = None
    urgency: Optional[str] = None


class MatchRequest(BaseModel):
    client: ClientIn
    # Left loose: a malformed candidate is scored as an error, not rejected
    candidates: list[dict[str, Any]] = Field(default_factory=list)
    limit: int = Field(10, ge=1, le=100)


def _page(items: list, total: int, page: int, limit: int) -> dict:
    return {
        "items": [item.to_dict() for item in items],
        "total": total,
        "page": page,
        "limit": min(limit, MAX_PAGE_SIZE),
    }


def _submit(runner: TaskRunner, source: str, rescrape: bool) -> dict:
    try:
        handle = runner.submit(source, rescrape=rescrape)
    except UnknownSourceError as e:
        raise HTTPException(status_code=404, detail={"message": str(e), "valid_sources": e.valid})
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "status": "accepted",
        "task_id": handle.task_id,
        "source": handle.source,
        "rescrape": handle.rescrape,
        "status_url": f"/api/tasks/{handle.task_id}",
    }


@router.post("/scrape/{source}", status_code=202)
def trigger_scrape(source: str, runner: TaskRunner = Depends(get_runner)):
    return _submit(runner, source, rescrape=False)


@router.post("/scrape/{source}/rescrape", status_code=202)
def trigger_rescrape(source: str, runner: TaskRunner = Depends(get_runner)):
    return _submit(runner, source, rescrape=True)


@router.get("/tasks/{task_id}")
def task_status(task_id: str, runner: TaskRunner = Depends(get_runner)):
    task = runner.status(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.get("/jobs")
def list_jobs(
    limit: int = Query(20, ge=1),
    source: Optional[str] = None,
    db: IntelDatabase = Depends(get_db),
):
    return {"jobs": db.list_jobs(limit=limit, source=source)}


@router.get("/jobs/{job_id}")
def get_job(job_id: int, db: IntelDatabase = Depends(get_db)):
    job = db.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.get("/professionals")
def list_professionals(
    province: Optional[str] = None,
    city: Optional[str] = None,
    source: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    db: IntelDatabase = Depends(get_db),
):
    items, total = db.list_persons(province, city, source, status, page, limit)
    return _page(items, total, page, limit)


@router.get("/businesses")
def list_businesses(
    province: Optional[str] = None,
    city: Optional[str] = None,
    source: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    db: IntelDatabase = Depends(get_db),
):
    items, total = db.list_businesses(province, city, source, status, page, limit)
    return _page(items, total, page, limit)


@router.post("/match")
def match(body: MatchRequest):
    client = ClientProfile(**body.client.model_dump())
    results = find_top_matches(client, body.candidates, body.limit)
    return {"matches": [result.to_dict() for result in results], "count": len(results)}


@router.get("/stats")
def stats(db: IntelDatabase = Depends(get_db)):
    return db.get_stats()
