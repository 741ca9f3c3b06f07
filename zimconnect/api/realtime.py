"""
ZimConnect — Realtime WebSocket

Streams the caller's change events (same scopes the client reconciler
uses) as JSON text frames.  The client re-scopes the message feed with::

    {"action": "watch_messages", "match_id": "<id or null>"}
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from zimconnect.database import async_session_factory
from zimconnect.realtime.events import ChangeEvent, Table
from zimconnect.realtime.feed import Subscription, get_change_feed
from zimconnect.services.ledger_service import LedgerService

logger = structlog.get_logger("zimconnect.api.realtime")

router = APIRouter()


class ClientCommand(BaseModel):
    action: str
    match_id: str | None = None


@router.websocket("/realtime")
async def realtime(websocket: WebSocket) -> None:
    user_id = websocket.headers.get("x-user-id") or websocket.query_params.get("user_id")
    if not user_id:
        await websocket.close(code=4401)
        return

    await websocket.accept()
    feed = get_change_feed()
    log = logger.bind(user_id=user_id)

    async def forward(event: ChangeEvent) -> None:
        await websocket.send_text(event.model_dump_json())

    subscriptions: dict[str, Subscription] = {
        "profiles": feed.subscribe(
            Table.PROFILES, forward, predicate=lambda row: row.get("id") != user_id,
            name=f"ws-profiles:{user_id}",
        ),
        "matches": feed.subscribe(
            Table.MATCHES, forward,
            predicate=lambda row: user_id in (row.get("user1_id"), row.get("user2_id")),
            name=f"ws-matches:{user_id}",
        ),
        "likes": feed.subscribe(Table.LIKES, forward, name=f"ws-likes:{user_id}"),
        "notifications": feed.subscribe(
            Table.NOTIFICATIONS, forward, predicate=lambda row: row.get("user_id") == user_id,
            name=f"ws-notifications:{user_id}",
        ),
    }
    log.info("realtime_connected")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                command = ClientCommand.model_validate_json(raw)
            except ValidationError:
                await websocket.send_json({"error": "bad_command"})
                continue
            if command.action != "watch_messages":
                await websocket.send_json({"error": "unknown_action", "action": command.action})
                continue

            previous = subscriptions.pop("messages", None)
            if previous is not None:
                previous.unsubscribe()
            if command.match_id is None:
                continue

            async with async_session_factory() as db:
                match = await LedgerService(feed=feed).get_match(command.match_id, db)
            if match is None or not match.involves(user_id):
                await websocket.send_json({"error": "stale_reference", "match_id": command.match_id})
                continue

            match_id = command.match_id
            subscriptions["messages"] = feed.subscribe(
                Table.MESSAGES, forward, predicate=lambda row: row.get("match_id") == match_id,
                name=f"ws-messages:{user_id}",
            )
            log.info("realtime_watch_messages", match_id=match_id)
    except WebSocketDisconnect:
        log.info("realtime_disconnected")
    finally:
        for sub in subscriptions.values():
            sub.unsubscribe()
