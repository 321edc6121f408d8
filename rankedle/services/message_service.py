"""
rankedle.services.message_service — Completion Flavor Messages
===============================================================

A random message is attached to an attempt when it ends (``first_try``,
``won`` or ``lose``).  Images are stored as raw bytes and served back as
``data:`` URLs; the MIME type is sniffed with Pillow.
"""

from __future__ import annotations

import base64
import io
import logging

from PIL import Image, UnidentifiedImageError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rankedle.database.models import FlavorMessage, MessageKind

logger = logging.getLogger(__name__)


def random_flavor_message(session: Session, kind: MessageKind | str) -> int | None:
    """Pick a random message id of *kind*, or ``None`` if there is none."""
    return session.scalar(
        select(FlavorMessage.id)
        .where(FlavorMessage.kind == MessageKind(kind).value)
        .order_by(func.random())
        .limit(1)
    )


def image_mime_type(data: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError):
        return None


def get_message(session: Session, message_id: int | None) -> dict:
    """``{"content", "image"}`` for *message_id*; both ``None`` if unknown."""
    message = session.get(FlavorMessage, message_id) if message_id is not None else None
    result: dict = {
        "content": message.content if message else None,
        "image": None,
    }
    if message and message.image:
        mime = image_mime_type(message.image)
        if mime:
            encoded = base64.b64encode(message.image).decode("ascii")
            result["image"] = f"data:{mime};base64,{encoded}"
        else:
            logger.warning("Flavor message %d has an unrecognised image", message.id)
    return result
