"""FastAPI application exposing conversation message lists."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from pydantic import BaseModel, Field

from ..conversation import ThreadMessagesList
from ..core import AppSettings, ServiceContainer, build_container, load_app_settings
from ..core.container import PAGE_CACHE, STORE
from ..core.datetime_utils import serialize_datetime
from ..core.models import NormalizedMessage, Participant, ThreadMessagesView
from ..ingestion.normalizer import NormalizationContext, create_normalization_context

LOGGER = logging.getLogger(__name__)


class ChangeEvent(BaseModel):
    """Realtime notification that a table changed."""

    table: str
    conversation_id: str | None = Field(default=None, alias="conversationId")

    model_config = {"populate_by_name": True}


def create_app(
    settings: AppSettings | None = None,
    *,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = settings or load_app_settings()
    services = container or build_container(app_settings)
    context = _build_context(app_settings)
    app = FastAPI(title="Support Threads API")

    # Compress responses larger than 1KB
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    def get_thread_list() -> ThreadMessagesList:
        return ThreadMessagesList(
            services.resolve(STORE),
            app_settings.threads,
            cache=services.resolve(PAGE_CACHE),
            context=context,
        )

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Close the message store on app shutdown."""
        await services.aclose()
        LOGGER.info("Message store closed")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/conversations/{conversation_id}/messages")
    async def conversation_messages(
        conversation_id: str,
        thread_list: ThreadMessagesList = Depends(get_thread_list),  # noqa: B008
    ) -> JSONResponse:
        """Return the loaded messages, fetching the first page if needed."""
        return _view_response(await thread_list.open(conversation_id))

    @app.post("/api/conversations/{conversation_id}/messages/next")
    async def next_messages(
        conversation_id: str,
        thread_list: ThreadMessagesList = Depends(get_thread_list),  # noqa: B008
    ) -> JSONResponse:
        """Load the next older page."""
        thread_list.switch(conversation_id)
        return _view_response(await thread_list.fetch_next_page())

    @app.post("/api/conversations/{conversation_id}/messages/retry")
    async def retry_messages(
        conversation_id: str,
        thread_list: ThreadMessagesList = Depends(get_thread_list),  # noqa: B008
    ) -> JSONResponse:
        """Re-issue the request that failed for the conversation."""
        thread_list.switch(conversation_id)
        return _view_response(await thread_list.retry())

    @app.post("/api/changes")
    async def table_changed(
        event: ChangeEvent,
        thread_list: ThreadMessagesList = Depends(get_thread_list),  # noqa: B008
    ) -> dict[str, Any]:
        """Invalidate cached pages after a realtime change."""
        invalidated = thread_list.handle_change(event.table, event.conversation_id)
        if invalidated:
            LOGGER.info(
                "Invalidated %d cached conversation(s) after %s change",
                invalidated,
                event.table,
            )
        return {"invalidated": invalidated}

    _ensure_route_names(app)
    return app


def _build_context(settings: AppSettings) -> NormalizationContext:
    agents = settings.agents
    return create_normalization_context(
        agent_emails=agents.emails,
        agent_phones=agents.phones,
        agent_domains=agents.domains,
        current_user_email=agents.current_user_email,
    )


def _ensure_route_names(app: FastAPI) -> None:
    """Assign names to routes if absent for better URL reversing."""
    for route in app.router.routes:
        if isinstance(route, APIRoute) and route.name is None:
            route.name = route.path_format.replace("/", ":") or "root"


def _view_response(view: ThreadMessagesView) -> JSONResponse:
    payload = serialize_view(view)
    if view.error is not None:
        return JSONResponse(payload, status_code=502)
    return JSONResponse(payload)


def serialize_view(view: ThreadMessagesView) -> dict[str, Any]:
    """Convert a view into the JSON shape served by the API."""
    return {
        "conversationId": view.conversation_id,
        "messages": [_serialize_message(message) for message in view.messages],
        "totalCount": view.total_count,
        "loadedCount": view.loaded_count,
        "remaining": view.remaining,
        "confidence": view.confidence.value,
        "hasNextPage": view.has_next_page,
        "isLoading": view.is_loading,
        "state": view.state.value,
        "error": (
            {"message": str(view.error), "retryable": True}
            if view.error is not None
            else None
        ),
    }


def _serialize_message(message: NormalizedMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "dedupKey": message.dedup_key,
        "createdAt": serialize_datetime(message.created_at),
        "channel": message.channel,
        "sender": _serialize_participant(message.sender),
        "recipients": list(message.recipients),
        "direction": message.direction,
        "authorType": message.author_type,
        "authorLabel": message.author_label,
        "body": message.visible_body,
        "quotedBlocks": [
            {"kind": block.kind, "raw": block.raw} for block in message.quoted_blocks
        ],
        "subject": message.subject,
        "isInternal": message.is_internal,
        "attachments": list(message.attachments),
        "messageId": message.message_id,
        "isSynthetic": message.is_synthetic,
    }


def _serialize_participant(participant: Participant) -> dict[str, Any]:
    return {
        "name": participant.name,
        "email": participant.email,
        "phone": participant.phone,
        "userId": participant.user_id,
    }


__all__ = ["ChangeEvent", "create_app", "serialize_view"]
