"""
Supply route resolution and detail navigation state.

The list page hands a pre-joined row to the detail view; a cold load of the
detail URL fetches the same shape directly.
"""
from collections import namedtuple
from typing import Any, Dict, List, Optional
import logging
import re

from sqlalchemy.orm import Session

from agrisupply.core.exceptions import NotFoundError
from agrisupply.services.supplies.listing import SupplyListService

logger = logging.getLogger(__name__)

LIST_ROUTE = "/supplies"
EDIT_ROUTE_PATTERN = re.compile(r"^/supplies/(\d+)/edit$")
DETAIL_ROUTE_PATTERN = re.compile(r"^/supplies/(\d+)$")

RouteMatch = namedtuple("RouteMatch", ["view", "supply_id", "background", "show_modal"])


def detail_path(supply_id: int) -> str:
    return f"{LIST_ROUTE}/{supply_id}"


def edit_path(supply_id: int) -> str:
    return f"{LIST_ROUTE}/{supply_id}/edit"


def resolve_supply_route(path: str) -> Optional[RouteMatch]:
    """
    Map a supplies URL to the view that renders it.

    The edit URL renders the list as background with the wizard as a modal
    on top.
    """
    path = (path or "").rstrip("/") or "/"
    if path == LIST_ROUTE:
        return RouteMatch("list", None, None, False)

    match = EDIT_ROUTE_PATTERN.match(path)
    if match:
        return RouteMatch("edit", int(match.group(1)), LIST_ROUTE, True)

    match = DETAIL_ROUTE_PATTERN.match(path)
    if match:
        return RouteMatch("detail", int(match.group(1)), None, False)
    return None


def build_navigation_state(rows: List[Dict[str, Any]], supply_id: int) -> Optional[Dict[str, Any]]:
    """State handed from a list row click to the detail view"""
    for row in rows:
        if row.get("id") == supply_id:
            return {"supply": row, "from": LIST_ROUTE}
    return None


class SupplyDetailService:
    """Detail view payload, from navigation state when present"""

    def __init__(self, db: Session):
        self.db = db

    def get_detail(self, supply_id: int, state: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if state and (state.get("supply") or {}).get("id") == supply_id:
            return state["supply"]

        row = SupplyListService(self.db).load_one(supply_id)
        if row is None:
            raise NotFoundError(f"Supply {supply_id} not found")
        logger.debug(f"Supply {supply_id} detail fetched directly")
        return row
