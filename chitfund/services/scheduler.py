"""Cron-style jobs (monthly dues, reminders) and the background scheduler."""

import calendar
import json
import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chitfund.core.config import settings
from chitfund.core.errors import ConflictError
from chitfund.db.base import SessionLocal, atomic
from chitfund.models.loan import LoanRequest, LoanStatus
from chitfund.models.member import Profile, ProfileRole
from chitfund.models.proof import PaymentProof, PaymentProofStatus
from chitfund.models.system import JobRun
from chitfund.services.accounting import format_amount, post_monthly_due, to_decimal
from chitfund.services.notification import create_notification, get_admin_profiles

logger = logging.getLogger(__name__)

scheduler: AsyncIOScheduler | None = None

MONTHLY_DUES_JOB = "monthly-dues"
REMINDER_STATUSES = (LoanStatus.APPROVED, LoanStatus.IN_PROCESS)
LOAN_LINK = "/loan-request"
ADMIN_LOANS_LINK = "/admin/loans"


class LateFeesNotImplemented(NotImplementedError):
    """Late fee processing is named but has no rules yet."""


def _members(db: Session) -> List[Profile]:
    return db.query(Profile).filter(Profile.role != ProfileRole.ADMIN).all()


# ---------------------------------------------------------------------------
# Job 1: Monthly dues
# ---------------------------------------------------------------------------

def run_monthly_dues(
    db: Session,
    run_by: Optional[UUID] = None,
    today: date = None,
    force: bool = False,
) -> Dict:
    """Charge every member the monthly dues once per calendar month.

    The ``job_run`` row keyed on ``YYYY-MM`` makes a second run in the same
    month a conflict; ``force`` records a distinct run key instead.
    """
    today = today or date.today()
    period = today.replace(day=1)
    period_key = period.strftime("%Y-%m")
    if force:
        period_key = f"{period_key}:forced:{datetime.utcnow():%Y%m%d%H%M%S%f}"

    if db.query(JobRun.id).filter(
        JobRun.job_name == MONTHLY_DUES_JOB, JobRun.period_key == period_key
    ).first():
        raise ConflictError(f"Monthly dues have already been applied for {period:%B %Y}")

    amount = to_decimal(settings.MONTHLY_DUES_AMOUNT)
    try:
        with atomic(db):
            members = _members(db)
            for member in members:
                post_monthly_due(db, member, amount, period, created_by=run_by)
            result = {
                "period": period.strftime("%Y-%m"),
                "members_charged": len(members),
                "amount_per_member": float(amount),
                "forced": force,
            }
            db.add(JobRun(
                job_name=MONTHLY_DUES_JOB,
                period_key=period_key,
                result=json.dumps(result),
                created_by=run_by,
            ))
    except IntegrityError:
        # Concurrent run committed the same period first
        raise ConflictError(f"Monthly dues have already been applied for {period:%B %Y}")

    logger.info(
        "Monthly dues of %s applied to %d member(s) for %s",
        amount, result["members_charged"], result["period"],
    )
    return result


# ---------------------------------------------------------------------------
# Job 2: Reminder notifications
# ---------------------------------------------------------------------------

def _loan_reminders(db: Session, today: date) -> int:
    windows = (
        ("today", today),
        ("in one week", today + timedelta(days=7)),
    )
    admins = get_admin_profiles(db)
    created = 0

    for time_text, day in windows:
        start = datetime.combine(day, time.min)
        loans = db.query(LoanRequest).filter(
            LoanRequest.status.in_(REMINDER_STATUSES),
            LoanRequest.due_date.isnot(None),
            LoanRequest.due_date >= start,
            LoanRequest.due_date < start + timedelta(days=1),
        ).all()

        window = "0d" if day == today else "7d"
        for loan in loans:
            due_label = f"{loan.due_date:%B %d, %Y}"
            amount = format_amount(loan.amount)
            borrower_name = (loan.borrower.full_name if loan.borrower else "") or "A member"
            key = f"loan-due:{loan.id}:{day.isoformat()}:{window}"

            if create_notification(
                db, loan.user_id, "Loan Repayment Reminder",
                f"Your loan of {amount} is due {time_text} on {due_label}.",
                link=LOAN_LINK, dedupe_key=key,
            ):
                created += 1

            for guarantor_id in loan.guarantor_ids:
                if create_notification(
                    db, guarantor_id, "Guaranteed Loan Reminder",
                    f"The loan for {borrower_name} that you guaranteed is due {time_text} on {due_label}.",
                    link=LOAN_LINK, dedupe_key=f"{key}:guarantor",
                ):
                    created += 1

            for admin in admins:
                if create_notification(
                    db, admin.id, "Loan Due Soon",
                    f"Reminder: {borrower_name}'s loan of {amount} is due {time_text} on {due_label}.",
                    link=ADMIN_LOANS_LINK, dedupe_key=f"{key}:admin",
                ):
                    created += 1
    return created


def _contribution_reminders(db: Session, today: date) -> int:
    last_day = calendar.monthrange(today.year, today.month)[1]
    if today.day not in (1, last_day):
        return 0

    message = (
        f"This is a friendly reminder to submit your monthly contribution of "
        f"{format_amount(settings.MONTHLY_CONTRIBUTION_AMOUNT)} for {today:%B %Y}. "
        f"If you have already paid, please ignore this message."
    )
    created = 0
    for member in _members(db):
        if create_notification(
            db, member.id, "Monthly Contribution Reminder", message,
            link="/contribute", dedupe_key=f"contribution-reminder:{today.isoformat()}",
        ):
            created += 1
    return created


def _missed_contribution_alerts(db: Session, today: date) -> int:
    if today.day != 4:
        return 0

    previous_month = today.replace(day=1) - relativedelta(months=1)
    contributor_ids = {
        row[0] for row in db.query(PaymentProof.user_id).filter(
            PaymentProof.status == PaymentProofStatus.APPROVED,
            PaymentProof.contribution_month >= previous_month,
            PaymentProof.contribution_month < today.replace(day=1),
        ).distinct().all()
    }
    missing = [m for m in _members(db) if m.id not in contributor_ids]
    if not missing:
        return 0

    created = 0
    for admin in get_admin_profiles(db):
        if create_notification(
            db, admin.id, "Missed Contributions Alert",
            f"{len(missing)} member(s) have not submitted their contribution for {previous_month:%B %Y}.",
            link="/admin/contributions",
            dedupe_key=f"missed-contributions:{previous_month:%Y-%m}",
        ):
            created += 1
    return created


def run_notification_cron(db: Session, today: date = None) -> Dict:
    """Create the day's reminders. Running twice on one day creates nothing new."""
    today = today or date.today()
    with atomic(db):
        counts = {
            "loan_reminders": _loan_reminders(db, today),
            "contribution_reminders": _contribution_reminders(db, today),
            "missed_contribution_alerts": _missed_contribution_alerts(db, today),
        }
    counts["total"] = sum(counts.values())
    logger.info("Notification cron for %s created %d notification(s)", today.isoformat(), counts["total"])
    return counts


# ---------------------------------------------------------------------------
# Job 3: Late fees
# ---------------------------------------------------------------------------

def run_late_fees(db: Session) -> Dict:
    raise LateFeesNotImplemented("Late fee processing is not implemented")


# ---------------------------------------------------------------------------
# Scheduled entry points
# ---------------------------------------------------------------------------

def run_scheduled_notifications() -> None:
    db = SessionLocal()
    try:
        run_notification_cron(db)
    except Exception:
        db.rollback()
        logger.exception("Error in scheduled notification job")
    finally:
        db.close()


def run_scheduled_monthly_dues() -> None:
    db = SessionLocal()
    try:
        run_monthly_dues(db)
    except ConflictError as e:
        logger.info("Scheduled monthly dues skipped: %s", e)
    except Exception:
        db.rollback()
        logger.exception("Error in scheduled monthly dues job")
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Scheduler lifecycle helpers
# ---------------------------------------------------------------------------

def start_scheduler() -> None:
    """Create and start the background scheduler."""
    global scheduler
    hour = settings.NOTIFICATION_CRON_HOUR

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_scheduled_notifications,
        trigger=CronTrigger(hour=hour, minute=0),
        id="notification_cron",
        name="Daily loan and contribution reminders",
        replace_existing=True,
    )
    if settings.ENABLE_SCHEDULED_MONTHLY_DUES:
        scheduler.add_job(
            run_scheduled_monthly_dues,
            trigger=CronTrigger(day=1, hour=hour, minute=5),
            id="monthly_dues",
            name="Monthly dues",
            replace_existing=True,
        )
    scheduler.start()
    logger.info("Background scheduler started; daily jobs at %02d:00", hour)


def stop_scheduler() -> None:
    """Shut down the background scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
        scheduler = None


def get_scheduler_status() -> dict:
    """Return current scheduler state for the status API."""
    if not scheduler or not scheduler.running:
        return {"running": False, "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
        })
    return {"running": True, "jobs": jobs}
