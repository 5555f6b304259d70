from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from chitfund.db.base import get_db
from chitfund.core.audit import audit_user_action
from chitfund.core.dependencies import require_admin
from chitfund.models.user import User
from chitfund.services.scheduler import (
    LateFeesNotImplemented,
    get_scheduler_status,
    run_late_fees,
    run_monthly_dues,
    run_notification_cron,
)

router = APIRouter(prefix="/api/admin/jobs", tags=["admin-jobs"])


@router.post("/monthly-dues")
def trigger_monthly_dues(
    force: bool = False,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Charge this month's dues; a second run in the month is refused unless forced."""
    result = run_monthly_dues(db, run_by=current_user.id, force=force)
    audit_user_action(current_user, "Run Monthly Dues", f"period={result['period']} forced={force}")
    return {"message": f"Monthly dues applied to {result['members_charged']} member(s).", **result}


@router.post("/notifications")
def trigger_notification_cron(
    run_date: Optional[date] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Run the reminder job now (optionally as of another date)."""
    counts = run_notification_cron(db, today=run_date)
    audit_user_action(current_user, "Run Notification Cron", f"created={counts['total']}")
    return {"message": f"Processed {counts['total']} in-app notifications.", **counts}


@router.post("/late-fees")
def trigger_late_fees(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        return run_late_fees(db)
    except LateFeesNotImplemented as e:
        raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail=str(e))


@router.get("/scheduler")
def scheduler_status(current_user: User = Depends(require_admin)):
    return get_scheduler_status()
