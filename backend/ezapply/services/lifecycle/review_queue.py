"""
Admin Review Queue

Read side of the lifecycle for admins: one combined, newest-first listing of
accounts in their grace period and reactivation requests, plus the archive
console listing.
"""
import math
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...config import ADMIN_PAGE_SIZE
from ...errors import InvalidRequest, NotFound
from ...models.db_models import ArchivedUserDB, BasicInfoDB, ReactivationRequestDB, UserDB


QUEUE_TYPES = ("all", "reactivation", "deactivation")
PENDING_DEACTIVATION = "pending_deactivation"


def paginate(items: List[Any], total: int, page: int, per_page: int) -> Dict[str, Any]:
    """Page envelope for admin listings. ``items`` is already the page slice."""
    last_page = max(1, math.ceil(total / per_page))
    first = (page - 1) * per_page + 1 if items else None
    return {
        "data": items,
        "total": total,
        "per_page": per_page,
        "current_page": page,
        "last_page": last_page,
        "from": first,
        "to": first + len(items) - 1 if items else None,
    }


def _name(user: Optional[UserDB]) -> Dict[str, Optional[str]]:
    info = user.basic_info if user is not None else None
    return {
        "first_name": info.first_name if info else None,
        "last_name": info.last_name if info else None,
    }


class ReviewQueueService:
    def __init__(self, db: Session, page_size: Optional[int] = None):
        self.db = db
        self.page_size = page_size or ADMIN_PAGE_SIZE

    # =========================================================================
    # REVIEW QUEUE
    # =========================================================================

    def list_queue(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        type: str = "all",
        page: int = 1,
    ) -> Dict[str, Any]:
        """
        Combined queue, newest first.

        ``status`` filters reactivation requests only; grace-period entries
        always carry status ``pending_deactivation``.
        """
        if type not in QUEUE_TYPES:
            raise InvalidRequest(f"Unknown queue type '{type}'")
        page = max(1, page)

        entries = []
        if type in ("all", "deactivation"):
            entries.extend(self._deactivation_entry(u) for u in self._pending_deactivations(search))
        if type in ("all", "reactivation"):
            entries.extend(self._reactivation_entry(r) for r in self._reactivation_requests(search, status))

        entries.sort(key=lambda e: e["created_at"], reverse=True)

        start = (page - 1) * self.page_size
        return paginate(entries[start:start + self.page_size], len(entries), page, self.page_size)

    def _search_clause(self, search: str):
        pattern = f"%{search}%"
        return or_(
            UserDB.email.ilike(pattern),
            UserDB.basic_info.has(or_(
                BasicInfoDB.first_name.ilike(pattern),
                BasicInfoDB.last_name.ilike(pattern),
            )),
        )

    def _pending_deactivations(self, search: Optional[str]) -> List[UserDB]:
        query = self.db.query(UserDB).filter(
            UserDB.deactivation_requested_at.isnot(None),
            UserDB.is_deactivated.is_(False),
        )
        if search:
            query = query.filter(self._search_clause(search))
        return query.all()

    def _reactivation_requests(self, search: Optional[str], status: Optional[str]) -> List[ReactivationRequestDB]:
        query = self.db.query(ReactivationRequestDB).join(UserDB, ReactivationRequestDB.user_id == UserDB.id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(ReactivationRequestDB.email.ilike(pattern), self._search_clause(search)))
        if status and status != "all":
            query = query.filter(ReactivationRequestDB.status == status)
        return query.all()

    @staticmethod
    def _deactivation_entry(user: UserDB) -> Dict[str, Any]:
        return {
            "id": f"deactivation_{user.id}",
            "type": "deactivation",
            "user_id": user.id,
            "email": user.email,
            **_name(user),
            "reason": None,
            "status": PENDING_DEACTIVATION,
            "reviewed_by": None,
            "reviewed_at": None,
            "admin_notes": None,
            "created_at": user.deactivation_requested_at,
            "deactivation_scheduled_at": user.deactivation_scheduled_at,
        }

    @staticmethod
    def _reactivation_entry(request: ReactivationRequestDB) -> Dict[str, Any]:
        return {
            "id": request.id,
            "type": "reactivation",
            "user_id": request.user_id,
            "email": request.email,
            **_name(request.user),
            "reason": request.reason,
            "status": request.status,
            "reviewed_by": request.reviewed_by,
            "reviewed_at": request.reviewed_at,
            "admin_notes": request.admin_notes,
            "created_at": request.created_at,
            "deactivation_scheduled_at": None,
        }

    # =========================================================================
    # ARCHIVE CONSOLE
    # =========================================================================

    def list_archives(self, page: int = 1) -> Dict[str, Any]:
        page = max(1, page)
        query = self.db.query(ArchivedUserDB)
        total = query.count()
        records = query.order_by(ArchivedUserDB.archived_at.desc()).offset(
            (page - 1) * self.page_size
        ).limit(self.page_size).all()
        return paginate(records, total, page, self.page_size)

    def get_archive(self, archive_id: str) -> ArchivedUserDB:
        record = self.db.query(ArchivedUserDB).filter(ArchivedUserDB.id == archive_id).first()
        if record is None:
            raise NotFound(f"Archive {archive_id} not found")
        return record
