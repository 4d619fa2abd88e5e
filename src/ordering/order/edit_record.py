"""Order edit records: the append-only audit trail of operator edits.

One record is written for every accepted edit, carrying the operator's
reason, the applied diff and where the operator was working from (timezone
and user agent), so support can reconstruct who changed what across
countries.
"""

import json
from datetime import UTC, datetime

from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering


@ordering.aggregate
class OrderEditRecord:
    order_id = Identifier(required=True)
    edit_version = Integer(required=True)
    reason = String(required=True, max_length=500)
    diff = Text(required=True)  # JSON
    edited_by = String(max_length=255)
    actor_timezone = String(max_length=100)
    user_agent = String(max_length=500)
    created_at = DateTime()

    @classmethod
    def record(cls, order_id, edit_version, reason, diff, edited_by=None, actor_timezone=None, user_agent=None):
        return cls(
            order_id=order_id,
            edit_version=edit_version,
            reason=reason,
            diff=json.dumps(diff, default=str),
            edited_by=edited_by,
            actor_timezone=actor_timezone,
            user_agent=user_agent,
            created_at=datetime.now(UTC),
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "order_id": str(self.order_id),
            "edit_version": self.edit_version,
            "reason": self.reason,
            "diff": json.loads(self.diff) if self.diff else {},
            "edited_by": self.edited_by,
            "actor_timezone": self.actor_timezone,
            "user_agent": self.user_agent,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def edits_for_order(order_id) -> list[OrderEditRecord]:
    """Return an order's edit records, newest first."""
    repo = current_domain.repository_for(OrderEditRecord)
    records = repo._dao.query.filter(order_id=str(order_id)).all().items
    return sorted(records, key=lambda record: record.edit_version, reverse=True)
