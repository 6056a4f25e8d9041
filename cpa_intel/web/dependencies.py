"""Shared FastAPI dependencies: the persistence handle and the task runner."""

from fastapi import Request

from cpa_intel.scheduler import TaskRunner
from cpa_intel.storage.database import IntelDatabase


def get_db(request: Request) -> IntelDatabase:
    return request.app.state.db


def get_runner(request: Request) -> TaskRunner:
    return request.app.state.runner
