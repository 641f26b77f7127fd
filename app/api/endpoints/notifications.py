import logging
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from jose import JWTError
from sqlalchemy.orm import Session
from typing import List

from app.crud import crud_customer, crud_notification
from app.schemas.notification import Notification
from app.models.user import User
from app.db.session import get_db
from app.core.dependencies import get_current_user
from app.core.notifications import registry
from app.core.security import decode_access_token

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/", response_model=List[Notification])
async def read_my_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    unread_only: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200)
):
    return crud_notification.get_notifications_for_user(
        db, receiver_id=current_user.id, unread_only=unread_only, skip=skip, limit=limit
    )

@router.post("/read-all")
async def mark_my_notifications_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    updated = crud_notification.mark_all_read(db, receiver_id=current_user.id)
    return {"updated": updated}

@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket, token: str = Query(...), db: Session = Depends(get_db)):
    """
    Live notification feed. Browsers cannot set headers on a WebSocket, so the bearer token comes as ?token=.
    """
    try:
        email = decode_access_token(token).get("sub")
    except JWTError:
        email = None
    user = crud_customer.get_user_by_email(db, email=email) if email else None
    if user is None or not user.is_active:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    user_id = user.id
    db.close()

    async with registry.connection(user_id, websocket):
        try:
            while True:
                await websocket.receive_text() # Clients only listen; anything sent is ignored
        except WebSocketDisconnect:
            logger.info(f"Notification socket closed for user {user_id}")
