import logging
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from .config import settings


logger = logging.getLogger(__name__)


@dataclass
class Page:
    items: list[Any]
    total: int
    page: int
    page_size: int


def parse_page(raw: Any) -> int:
    try:
        page = int(str(raw).strip())
    except (TypeError, ValueError):
        return 1
    return page if page > 0 else 1


def fetch_page(
    db: Session,
    statement: Select,
    where: Any = None,
    page: int = 1,
    page_size: int | None = None,
) -> Page:
    """Run the count and the page query against one snapshot.

    When the session already has a transaction open both statements join it,
    otherwise a read transaction is opened and closed here.
    """
    size = page_size or settings.page_size
    page = page if page > 0 else 1
    if where is not None:
        statement = statement.where(where)
    count_statement = select(func.count()).select_from(statement.order_by(None).subquery())

    with nullcontext() if db.in_transaction() else db.begin():
        total = db.execute(count_statement).scalar_one()
        items = list(db.scalars(statement.limit(size).offset(size * (page - 1))).unique())

    logger.debug("Fetched page %s (%s of %s rows)", page, len(items), total)
    return Page(items=items, total=total, page=page, page_size=size)
