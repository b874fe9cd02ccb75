"""Router factory shared by the notes and question-paper resources."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from starlette.datastructures import UploadFile

from campus_notes.core.deps import (
    get_content_workflow,
    get_current_user,
    get_engagement_service,
    get_file_store,
    get_optional_user,
    require_moderator,
)
from campus_notes.core.errors import NotFoundError
from campus_notes.models.enums import ContentStatus, SortOrder
from campus_notes.models.user import User
from campus_notes.schemas.content import ModerationDecision
from campus_notes.schemas.engagement import CommentCreate, CommentRead, LikeResult
from campus_notes.schemas.envelope import Envelope, ListEnvelope, ok, paginated
from campus_notes.services.content_repository import MAX_PAGE_SIZE, ContentQuery
from campus_notes.services.content_workflow import ContentWorkflow, IncomingFile
from campus_notes.services.engagement import EngagementService
from campus_notes.services.storage import FileStore
from campus_notes.services.variants import ContentVariant

logger = logging.getLogger(__name__)

_NON_ASCII = re.compile(r"[^A-Za-z0-9._ -]+")


def serialize_items(variant: ContentVariant, items: list, engagement: EngagementService, viewer: Optional[User]) -> list:
    counts = engagement.counts_for(variant, [item.id for item in items], viewer)
    serialized = []
    for item in items:
        tally = counts[item.id]
        read = variant.read_schema.model_validate(item)
        serialized.append(
            read.model_copy(
                update={
                    "likes_count": tally.likes,
                    "comments_count": tally.comments,
                    "views_count": tally.views,
                    "user_liked": tally.user_liked,
                }
            )
        )
    return serialized


def _download_name(file_name: str) -> str:
    cleaned = _NON_ASCII.sub("_", file_name).strip() or "download"
    return cleaned[:150]


def _form_metadata(form) -> dict[str, Any]:
    metadata: dict[str, Any] = {}
    for key in form.keys():
        if key == "file":
            continue
        values = [value for value in form.getlist(key) if isinstance(value, str)]
        if not values:
            continue
        metadata[key] = values if key == "tags" and len(values) > 1 else values[0]
    return metadata


def build_content_router(
    variant: ContentVariant,
    *,
    prefix: str,
    tags: list[str],
    filters_dependency: Callable[..., dict],
) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=tags)
    label = variant.label
    read_schema = variant.read_schema

    def _query(
        page: int,
        limit: int,
        filters: dict,
        subject: Optional[str],
        search: Optional[str],
        status_filter: Optional[ContentStatus],
        sort_by: Optional[str],
        sort_order: SortOrder,
    ) -> ContentQuery:
        return ContentQuery(
            page=page,
            limit=limit,
            filters=filters,
            subject=subject.strip() if subject else None,
            search=search.strip() if search else None,
            status=status_filter,
            sort_by=sort_by,
            sort_order=sort_order,
        )

    @router.get("", response_model=ListEnvelope[read_schema])
    def list_items(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
        filters: dict = Depends(filters_dependency),
        subject: Optional[str] = Query(default=None),
        search: Optional[str] = Query(default=None),
        status_filter: Optional[ContentStatus] = Query(default=None, alias="status"),
        sort_by: Optional[str] = Query(default=None),
        sort_order: SortOrder = Query(default=SortOrder.DESC),
        viewer: Optional[User] = Depends(get_optional_user),
        workflow: ContentWorkflow = Depends(get_content_workflow),
        engagement: EngagementService = Depends(get_engagement_service),
    ) -> dict:
        query = _query(page, limit, filters, subject, search, status_filter, sort_by, sort_order)
        result = workflow.list(variant, query, viewer)
        return paginated(serialize_items(variant, result.items, engagement, viewer), result)

    @router.get("/mine", response_model=ListEnvelope[read_schema])
    def list_my_items(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
        status_filter: Optional[ContentStatus] = Query(default=None, alias="status"),
        current_user: User = Depends(get_current_user),
        workflow: ContentWorkflow = Depends(get_content_workflow),
        engagement: EngagementService = Depends(get_engagement_service),
    ) -> dict:
        query = ContentQuery(page=page, limit=limit, status=status_filter)
        result = workflow.list(variant, query, current_user, own=True)
        return paginated(serialize_items(variant, result.items, engagement, current_user), result)

    @router.get("/{item_id}", response_model=Envelope[read_schema])
    def get_item(
        item_id: int,
        viewer: Optional[User] = Depends(get_optional_user),
        workflow: ContentWorkflow = Depends(get_content_workflow),
        engagement: EngagementService = Depends(get_engagement_service),
    ) -> dict:
        item = workflow.get_visible(variant, item_id, viewer)
        engagement.record_view(variant, item, viewer)
        return ok(serialize_items(variant, [item], engagement, viewer)[0])

    @router.post("", response_model=Envelope[read_schema], status_code=status.HTTP_201_CREATED)
    async def create_item(
        request: Request,
        current_user: User = Depends(get_current_user),
        workflow: ContentWorkflow = Depends(get_content_workflow),
        engagement: EngagementService = Depends(get_engagement_service),
    ) -> dict:
        form = await request.form()
        try:
            upload = form.get("file")
            incoming = None
            if isinstance(upload, UploadFile) and upload.filename:
                incoming = IncomingFile(filename=upload.filename, content_type=upload.content_type, stream=upload.file)
            item = await run_in_threadpool(
                workflow.submit,
                variant,
                metadata=_form_metadata(form),
                upload=incoming,
                requester=current_user,
            )
        finally:
            await form.close()

        if item.status == ContentStatus.APPROVED:
            message = f"{label} uploaded and published successfully"
        else:
            message = f"{label} uploaded successfully and is pending approval"
        data = await run_in_threadpool(serialize_items, variant, [item], engagement, current_user)
        return ok(data[0], message)

    @router.patch("/{item_id}/approve", response_model=Envelope[read_schema])
    def moderate_item(
        item_id: int,
        decision: ModerationDecision,
        moderator: User = Depends(require_moderator),
        workflow: ContentWorkflow = Depends(get_content_workflow),
        engagement: EngagementService = Depends(get_engagement_service),
    ) -> dict:
        outcome = workflow.moderate(variant, item_id, decision, moderator)
        if not outcome.approved:
            return ok(None, f"{label} rejected and deleted")
        return ok(serialize_items(variant, [outcome.item], engagement, moderator)[0], f"{label} approved successfully")

    @router.patch("/{item_id}", response_model=Envelope[read_schema])
    def update_item(
        item_id: int,
        payload: dict[str, Any] = Body(...),
        current_user: User = Depends(get_current_user),
        workflow: ContentWorkflow = Depends(get_content_workflow),
        engagement: EngagementService = Depends(get_engagement_service),
    ) -> dict:
        item = workflow.update(variant, item_id, payload, current_user)
        return ok(serialize_items(variant, [item], engagement, current_user)[0], f"{label} updated successfully")

    @router.get("/{item_id}/download")
    def download_item(
        item_id: int,
        request: Request,
        viewer: Optional[User] = Depends(get_optional_user),
        engagement: EngagementService = Depends(get_engagement_service),
        store: FileStore = Depends(get_file_store),
    ) -> FileResponse:
        item = engagement.get_published(variant, item_id)
        path = store.path_for(item.storage_key)
        if not path.exists():
            logger.error("stored_file_missing", extra={"storage_key": item.storage_key, "content_id": item.id})
            raise NotFoundError("File not found")
        client_ip = request.client.host if request.client else None
        engagement.record_download(variant, item_id, viewer, client_ip)
        return FileResponse(path, media_type=item.file_type, filename=_download_name(item.file_name))

    @router.delete("/{item_id}", response_model=Envelope[None])
    def delete_item(
        item_id: int,
        current_user: User = Depends(get_current_user),
        workflow: ContentWorkflow = Depends(get_content_workflow),
    ) -> dict:
        workflow.delete(variant, item_id, current_user)
        return ok(None, f"{label} deleted successfully")

    if variant.social:
        _add_engagement_routes(router, variant)
    return router


def _add_engagement_routes(router: APIRouter, variant: ContentVariant) -> None:
    label = variant.label

    @router.post("/{item_id}/like", response_model=Envelope[LikeResult])
    def toggle_like(
        item_id: int,
        current_user: User = Depends(get_current_user),
        engagement: EngagementService = Depends(get_engagement_service),
    ) -> dict:
        liked, count = engagement.toggle_like(variant, item_id, current_user)
        message = f"{label} liked" if liked else f"{label} unliked"
        return ok(LikeResult(liked=liked, likes_count=count), message)

    @router.post("/{item_id}/comment", response_model=Envelope[CommentRead], status_code=status.HTTP_201_CREATED)
    def add_comment(
        item_id: int,
        payload: CommentCreate,
        current_user: User = Depends(get_current_user),
        engagement: EngagementService = Depends(get_engagement_service),
    ) -> dict:
        comment = engagement.add_comment(variant, item_id, current_user, payload.text)
        return ok(CommentRead.model_validate(comment), "Comment added successfully")

    @router.get("/{item_id}/comments", response_model=Envelope[list[CommentRead]])
    def list_comments(
        item_id: int,
        engagement: EngagementService = Depends(get_engagement_service),
    ) -> dict:
        comments = engagement.list_comments(variant, item_id)
        return ok([CommentRead.model_validate(comment) for comment in comments])

    @router.delete("/{item_id}/comment/{comment_id}", response_model=Envelope[None])
    def delete_comment(
        item_id: int,
        comment_id: int,
        current_user: User = Depends(get_current_user),
        engagement: EngagementService = Depends(get_engagement_service),
    ) -> dict:
        engagement.delete_comment(variant, item_id, comment_id, current_user)
        return ok(None, "Comment deleted successfully")
