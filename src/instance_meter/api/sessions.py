"""Session history endpoints."""

from __future__ import annotations

import time
from dataclasses import asdict
from typing import TYPE_CHECKING
from uuid import uuid4

from fastapi import APIRouter, HTTPException, Request, status

from instance_meter.api.models import RestartRequest, SessionSnapshotPayload
from instance_meter.domain.sessions import SessionRecord

if TYPE_CHECKING:
    from instance_meter.containers import AppContainer

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _container(request: Request) -> AppContainer:
    return request.app.state.container


@router.get("")
async def list_sessions(request: Request) -> dict[str, object]:
    """Return persisted sessions, most recent first."""
    container = _container(request)
    sessions = container.session_repository.list_sessions()
    return {"sessions": [asdict(session) for session in sessions]}


@router.get("/{session_id}")
async def get_session(session_id: str, request: Request) -> dict[str, object]:
    """Return one session including its snapshot."""
    container = _container(request)
    session = container.session_repository.get_session(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Session not found"
        )
    return asdict(session)


@router.post("")
async def save_session(
    payload: SessionSnapshotPayload, request: Request
) -> dict[str, str]:
    """Persist a client-supplied snapshot as a session."""
    if not payload.players:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Session has no players"
        )
    container = _container(request)
    now = int(time.time() * 1000)
    started_at = payload.started_at if payload.started_at is not None else now
    ended_at = payload.ended_at if payload.ended_at is not None else now
    record = SessionRecord(
        id=str(uuid4()),
        name=payload.name or payload.boss_name or "Run",
        started_at=started_at,
        ended_at=ended_at,
        duration_ms=max(0, ended_at - started_at),
        reason_start=None,
        reason_end="manual_save",
        sequence=None,
        instance_id=None,
        from_instance=None,
        party_size=len(payload.players),
        snapshot=payload.model_dump(),
    )
    try:
        session_id = container.session_repository.add_session(record)
    except OSError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save session",
        ) from exc
    return {"id": session_id}


@router.post("/restart")
async def restart_session(
    request: Request, options: RestartRequest | None = None
) -> dict[str, object]:
    """Finalize the open session and start a fresh one."""
    container = _container(request)
    options = options or RestartRequest()
    session = container.session_manager.restart_session(
        reason=options.reason,
        extra={"map_name": options.map_name, "to": options.to},
    )
    return asdict(session)


@router.delete("/{session_id}")
async def delete_session(session_id: str, request: Request) -> dict[str, str]:
    """Delete one session."""
    container = _container(request)
    if not container.session_repository.delete_session(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Session not found"
        )
    return {"status": "ok"}


@router.delete("")
async def clear_sessions(request: Request) -> dict[str, str]:
    """Delete every session."""
    container = _container(request)
    container.session_repository.clear_sessions()
    return {"status": "ok"}
