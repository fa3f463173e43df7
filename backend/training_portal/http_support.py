"""Shared FastAPI dependencies: acting viewer resolution and domain error mapping."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, status

from .checkpoint import ChapterLockedError
from .entities import EntityNotFoundError, GraphEditError, ViewerContext
from .snapshot_store import SnapshotStore, get_snapshot_store

logger = logging.getLogger(__name__)


@contextmanager
def domain_errors() -> Generator[None, None, None]:
    """Translate engine exceptions raised inside the block into HTTP errors."""
    try:
        yield
    except EntityNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (GraphEditError, ChapterLockedError) as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": exc.code, "message": str(exc)},
        ) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


def get_viewer(
    x_actor_id: str = Header(..., min_length=1),
    x_view_as: Optional[str] = Header(default=None),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> ViewerContext:
    actor = snapshots.read().learner(x_actor_id.strip())
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Actor '{x_actor_id}' is not a known volunteer.",
        )
    view_as = x_view_as.strip() if x_view_as else None
    if view_as and not actor.is_admin and view_as != actor.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can preview another volunteer.",
        )
    return ViewerContext(actor_id=actor.id, is_admin=actor.is_admin, view_as_id=view_as or None)


def require_admin(viewer: ViewerContext = Depends(get_viewer)) -> ViewerContext:
    if not viewer.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access is required.",
        )
    return viewer


def require_learner_access(learner_id: str, viewer: ViewerContext = Depends(get_viewer)) -> ViewerContext:
    """Allow a volunteer on their own record, and admins on any record."""
    if not viewer.can_manage(learner_id):
        logger.info("Viewer %s denied access to learner %s", viewer.actor_id, learner_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"'{viewer.actor_id}' may not access '{learner_id}'.",
        )
    return viewer


__all__ = ["domain_errors", "get_viewer", "require_admin", "require_learner_access"]
