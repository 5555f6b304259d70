from datetime import datetime

from chitfund.core.config import LOGS_DIR


def write_audit_log(user_name: str, user_role: str, action: str, details: str = ""):
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    month_str = datetime.now().strftime("%Y_%m")
    log_file = LOGS_DIR / f"audit_{month_str}.log"
    ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    with open(log_file, "a", encoding="utf-8") as f:
        f.write(f"{ts} | {user_role} | {user_name} | {action} | {details}\n")


def audit_user_action(user, action: str, details: str = ""):
    """Audit an action performed by an authenticated user."""
    profile = user.profile
    user_name = (profile.full_name if profile else "") or user.email
    user_role = profile.role.value if profile and profile.role else "member"
    write_audit_log(user_name=user_name, user_role=user_role, action=action, details=details)
