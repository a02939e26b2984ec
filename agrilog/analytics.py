from collections import Counter, OrderedDict
from typing import Iterable, List, Dict, Optional

from .models import ActivityType, utcnow
from .validators import as_utc

def _type_name(activity) -> str:
    t = activity.activity_type
    return getattr(t, "value", t)

def _month(value) -> str:
    return value.strftime("%b")

def count_by_type(activities: Iterable) -> Dict[str, int]:
    return dict(Counter(_type_name(a) for a in activities))

def count_by_crop(activities: Iterable, unknown: Optional[str] = None) -> Dict[str, int]:
    """
    Counts activities per crop. Without `unknown`, activities with no crop
    are skipped; otherwise they are counted under that label.
    """
    counts = Counter()
    for a in activities:
        if a.crop:
            counts[a.crop] += 1
        elif unknown is not None:
            counts[unknown] += 1
    return dict(counts)

def count_by_month(activities: Iterable) -> Dict[str, int]:
    """Activity counts keyed by three-letter month, in first-seen order."""
    counts = OrderedDict()
    for a in sorted(activities, key=lambda a: as_utc(a.activity_date)):
        month = _month(a.activity_date)
        counts[month] = counts.get(month, 0) + 1
    return dict(counts)

def season_summary(activities: List) -> dict:
    by_type = count_by_type(activities)
    return {
        "total": len(activities),
        "by_type": by_type,
        "by_crop": count_by_crop(activities),
        "by_month": count_by_month(activities),
        "pest_alert": by_type.get(ActivityType.PEST.value, 0),
    }

def count_by_region(profiles: Iterable, limit: int = 5) -> Dict[str, int]:
    counts = Counter((p.village_location or "Unknown") for p in profiles)
    return dict(counts.most_common(limit))

def institution_report(activities: List, profiles: List) -> dict:
    return {
        "total_activities": len(activities),
        "farmers": len(profiles),
        "crop_distribution": count_by_crop(activities, unknown="Unknown"),
        "activity_types": count_by_type(activities),
        "monthly_trend": count_by_month(activities),
        "regions": count_by_region(profiles),
    }

def flag_reasons(activity, now=None) -> List[str]:
    now = as_utc(now) or utcnow()
    reasons = []
    if _type_name(activity) == ActivityType.HARVEST.value and not activity.yield_estimate:
        reasons.append("harvest_without_yield")
    if (activity.location_lat is None) != (activity.location_lng is None):
        reasons.append("partial_coordinates")
    if activity.activity_date and as_utc(activity.activity_date) > now:
        reasons.append("future_date")
    return reasons

def data_quality(activities: List) -> dict:
    """
    Completeness: crop plus notes or inputs recorded.
    AI processed: a non-empty AI summary.
    Flagged: any reason from flag_reasons().
    """
    total = len(activities)
    now = utcnow()
    complete = sum(1 for a in activities if a.crop and (a.notes or a.inputs_used))
    processed = sum(1 for a in activities if a.ai_summary)
    flagged = [a.id for a in activities if flag_reasons(a, now)]

    def pct(n):
        return round(100.0 * n / total, 1) if total else 0.0

    return {
        "total_activities": total,
        "completeness_pct": pct(complete),
        "ai_processed_pct": pct(processed),
        "flagged_entries": len(flagged),
        "flagged_ids": flagged,
    }

def monthly_counts(timestamps: Iterable) -> Dict[str, int]:
    """Counts keyed by "YYYY-MM", oldest first."""
    counts = Counter(t.strftime("%Y-%m") for t in timestamps if t)
    return dict(sorted(counts.items()))
