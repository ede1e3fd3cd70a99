"""Player value and retention metrics."""
from datetime import UTC, datetime, timedelta
from typing import Dict, List


def calculate_value_score(total_deposited: float, total_wagered: float, net_pnl: float) -> float:
    """
    Calculate player value score.

    Formula: total_deposited + (total_wagered * 0.1) - abs(net_pnl) * 0.05
    """
    return float(total_deposited) + float(total_wagered) * 0.1 - abs(float(net_pnl)) * 0.05


def _as_utc(moment: datetime) -> datetime:
    # Naive timestamps from SQLite are stored in UTC
    return moment if moment.tzinfo else moment.replace(tzinfo=UTC)


def classify_churn_status(last_active_at: datetime | None, now: datetime | None = None) -> Dict[str, str]:
    """Classify player status and churn risk from the last time they were active."""
    if not last_active_at:
        return {"status": "CHURNED", "churn_risk": "HIGH"}

    now = _as_utc(now or datetime.now(UTC))
    days_since_active = (now - _as_utc(last_active_at)).days

    if days_since_active > 30:
        return {"status": "CHURNED", "churn_risk": "HIGH"}
    if days_since_active > 14:
        return {"status": "FADING", "churn_risk": "HIGH"}
    if days_since_active > 7:
        return {"status": "FADING", "churn_risk": "MED"}
    return {"status": "ACTIVE", "churn_risk": "LOW"}


def calculate_retention(last_active: List[datetime | None], now: datetime | None = None) -> Dict[str, float]:
    """
    Count players active within 7 and 30 days and the share of the total.

    Percentages are 0 for an empty population.
    """
    now = _as_utc(now or datetime.now(UTC))
    seven_days_ago = now - timedelta(days=7)
    thirty_days_ago = now - timedelta(days=30)

    seen = [_as_utc(moment) for moment in last_active if moment]
    active_7d = sum(1 for moment in seen if moment >= seven_days_ago)
    active_30d = sum(1 for moment in seen if moment >= thirty_days_ago)
    total = len(last_active)

    return {
        "total_players": total,
        "active_7d": active_7d,
        "active_30d": active_30d,
        "retention_7d": (active_7d / total) * 100 if total > 0 else 0,
        "retention_30d": (active_30d / total) * 100 if total > 0 else 0,
    }
