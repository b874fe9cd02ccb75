"""Central router registry for module-oriented composition."""
from __future__ import annotations

from fastapi import FastAPI

from campus_notes.routers.auth import router as AUTH_ROUTER
from campus_notes.routers.notes import router as NOTES_ROUTER
from campus_notes.routers.question_papers import router as QUESTION_PAPERS_ROUTER
from campus_notes.routers.users import router as USERS_ROUTER

ALL_ROUTERS = (
    AUTH_ROUTER,
    USERS_ROUTER,
    NOTES_ROUTER,
    QUESTION_PAPERS_ROUTER,
)


def include_all_routers(app: FastAPI) -> None:
    for router in ALL_ROUTERS:
        app.include_router(router)
