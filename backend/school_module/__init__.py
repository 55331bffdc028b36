from sqlalchemy.orm import Session

from .assignment_requests import router as class_request_router
from .config import settings
from .database import Base, engine
from .message_routes import router as message_router
from .routes import router
from .seed import seed_demo_data


def init_school_module(bind=None, seed: bool | None = None) -> None:
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    if not (settings.seed_demo if seed is None else seed):
        return
    db = Session(bind=bind)
    try:
        seed_demo_data(db)
    finally:
        db.close()


__all__ = ["router", "message_router", "class_request_router", "init_school_module"]
