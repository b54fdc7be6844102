"""
Coach insights: rule-based training feedback built on workout history,
goals and the readiness engine.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from readiness import calculate_readiness
from record_utils import as_utc, num, parse_timestamp

log = logging.getLogger("coach_insights")

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

# goal discipline -> workout / chapter types that count toward it
_DISCIPLINE_TYPES = {
    "strength": ("strength", "gym"),
    "endurance": ("endurance",),
    "combat": ("martial_arts",),
}


def _chapters(workout: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [c for c in ((workout.get("session_data") or {}).get("chapters") or []) if isinstance(c, dict)]


def _has_type(workout: Dict[str, Any], types: tuple) -> bool:
    if workout.get("workout_type") in types:
        return True
    return any(ch.get("type") in types for ch in _chapters(workout))


def _since(workouts: List[Dict[str, Any]], cutoff: datetime) -> List[Dict[str, Any]]:
    out = []
    for w in workouts:
        ts = parse_timestamp(w.get("created_date"))
        if ts is not None and ts > cutoff:
            out.append(w)
    return out


def _newest_first(workouts: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    def key(w):
        ts = parse_timestamp(w.get("created_date"))
        return ts.timestamp() if ts else float("-inf")
    return sorted(workouts or [], key=key, reverse=True)


def endurance_km(workouts: List[Dict[str, Any]]) -> float:
    total = 0.0
    for w in workouts:
        for ch in _chapters(w):
            if ch.get("type") == "endurance":
                total += num((ch.get("data") or {}).get("distance"))
    return total


def _last_finished(workouts: List[Dict[str, Any]], n: int = 3) -> List[Dict[str, Any]]:
    return [w for w in workouts if w.get("status") == "finished"][:n]


def generate_insights(
    user: Optional[Dict[str, Any]],
    workouts: Optional[List[Dict[str, Any]]],
    goals: Optional[List[Dict[str, Any]]],
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Priority-sorted coaching insights for the last 30 days."""
    now = as_utc(now)
    user = user or {}
    last30 = _since(_newest_first(workouts), now - timedelta(days=30))
    last7 = _since(last30, now - timedelta(days=7))
    insights: List[Dict[str, Any]] = []

    last3 = _last_finished(last30)
    if len(last3) >= 3 and not any(_has_type(w, ("recovery",)) for w in last3):
        insights.append({
            "type": "warning",
            "title": "Recovery Deficit Detected",
            "message": (
                "No recovery work in your last 3 sessions. Your next session should include "
                "a 10-minute mobility flow or stretching to prevent burnout."
            ),
            "priority": "high",
        })

    mode = user.get("nutrition_goal_mode") or "maintaining"
    km = endurance_km(last7)
    if mode == "bulking" and km > 10:
        insights.append({
            "type": "info",
            "title": "High Energy Expenditure",
            "message": (
                f"You've logged {km:.1f}km this week while bulking. Consider adding a "
                "400-calorie snack post-workout to protect your muscle-building goal."
            ),
            "priority": "medium",
        })
    if mode == "cutting" and km < 5:
        insights.append({
            "type": "info",
            "title": "Low Cardio Volume",
            "message": (
                f"Only {km:.1f}km this week. Adding 2-3 cardio sessions could accelerate "
                "your cutting phase while preserving muscle."
            ),
            "priority": "low",
        })

    two_weeks_ago = now - timedelta(days=14)
    for goal in goals or []:
        if goal.get("status") != "active":
            continue
        types = _DISCIPLINE_TYPES.get(goal.get("discipline"))
        if not types:
            continue
        goal_workouts = [w for w in last30 if _has_type(w, types)]
        if len(goal_workouts) < 3:
            continue

        current = num(goal.get("current_value"))
        target = num(goal.get("target_value"))
        remaining = target - current
        recent = _since(goal_workouts, two_weeks_ago)

        if not recent and current < target:
            insights.append({
                "type": "warning",
                "title": "Plateau Detected",
                "message": (
                    f'No progress on "{goal.get("title")}" in 14+ days. Your body has adapted to '
                    "the current stimulus. Consider introducing new exercises, adjusting volume, "
                    "or trying a different training protocol to break through this plateau."
                ),
                "priority": "high",
            })
        elif remaining > 0 and current > 0:
            weekly_rate = current / 4
            weeks_to_goal = math.ceil(remaining / weekly_rate)
            if 0 < weeks_to_goal < 12:
                unit = goal.get("metric_unit") or ""
                insights.append({
                    "type": "success",
                    "title": "On Track to Goal",
                    "message": (
                        f"At your current pace of {weekly_rate:.1f} {unit}/week, you're on track "
                        f'to hit your "{goal.get("title")}" goal of {goal.get("target_value")}{unit} '
                        f"in approximately {weeks_to_goal} weeks. Keep up the great work!"
                    ),
                    "priority": "medium",
                })

    insights.sort(key=lambda i: _PRIORITY_ORDER[i["priority"]])
    return insights


def coach_nuggets(
    user: Optional[Dict[str, Any]],
    workouts: Optional[List[Dict[str, Any]]],
    goals: Optional[List[Dict[str, Any]]],
    now: Optional[datetime] = None,
) -> List[Dict[str, str]]:
    now = as_utc(now)
    user = user or {}
    last30 = _since(_newest_first(workouts), now - timedelta(days=30))
    last7 = _since(last30, now - timedelta(days=7))
    nuggets: List[Dict[str, str]] = []

    combat = [w for w in last7 if _has_type(w, ("martial_arts",))]
    if len(combat) >= 3 and user.get("nutrition_goal_mode") == "bulking":
        nuggets.append({
            "title": "The Nutrition Pivot",
            "message": (
                "You've burned 800+ extra calories in sparring this week. Increase carbs "
                "tonight to protect your muscle-mass goal."
            ),
        })

    last3 = _last_finished(last30)
    if len(last3) >= 3 and not any(_has_type(w, ("recovery",)) for w in last3):
        nuggets.append({
            "title": "The Recovery Gap",
            "message": (
                "Your last 3 sessions had 0 recovery rounds. Speed up your return-to-play "
                "by adding a 5-min Ice Bath."
            ),
        })

    goal = next(
        (g for g in goals or [] if g.get("status") == "active" and g.get("discipline") == "endurance"),
        None,
    )
    target_date = parse_timestamp(goal.get("target_date")) if goal else None
    if target_date is not None:
        days_left = (target_date - now).days
        if 0 < days_left < 30:
            nuggets.append({
                "title": "The Achievement Path",
                "message": (
                    f"At your current pace, your {goal.get('title')} is {days_left} days away. "
                    "Stick to the current zone-2 volume."
                ),
            })
    return nuggets


# ─── Readiness correlations ────────────────────────────────

def _split_by_readiness(
    sessions: List[Dict[str, Any]],
    history: List[Dict[str, Any]],
    metric: Callable[[Dict[str, Any]], float],
    score: Callable[[Dict[str, Any]], float],
    skip_empty: bool = True,
) -> tuple:
    high: List[float] = []
    low: List[float] = []
    for w in sessions:
        started = parse_timestamp(w.get("created_date"))
        if started is None:
            continue
        value = metric(w)
        if skip_empty and value <= 0:
            continue
        before = [
            h for h in history
            if (parse_timestamp(h.get("created_date")) or started) < started
        ]
        readiness = score(calculate_readiness(before, now=started))
        if readiness >= 80:
            high.append(value)
        elif readiness < 60:
            low.append(value)
    return high, low


def _boxing_rounds(w: Dict[str, Any]) -> float:
    sd = w.get("session_data") or {}
    chapters = _chapters(w)
    first = (chapters[0].get("data") or {}) if chapters else {}
    return num(first.get("total_rounds")) or num(sd.get("total_rounds"))


def _run_pace(w: Dict[str, Any]) -> float:
    chapters = _chapters(w)
    distance = num((chapters[0].get("data") or {}).get("distance")) if chapters else 0.0
    duration = num(w.get("duration_minutes"))
    if distance <= 0 or duration <= 0:
        return 0.0
    return duration / distance


def fatigue_correlations(workouts: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """How session output differs between high (>= 80) and low (< 60) readiness.

    Readiness is evaluated as of each session's start from the workouts
    logged before it.  Categories need at least 5 sessions.
    """
    workouts = workouts or []
    out: List[Dict[str, Any]] = []
    overall = lambda r: r["overall"]  # noqa: E731

    boxing = [
        w for w in workouts
        if w.get("workout_type") == "martial_arts" and "box" in str(w.get("session_type") or "").lower()
    ]
    if len(boxing) >= 5:
        # sessions without logged rounds still count as zero
        high, low = _split_by_readiness(boxing, workouts, _boxing_rounds, overall, skip_empty=False)
        pct = _improvement(high, low)
        if pct > 0:
            out.append({
                "type": "boxing",
                "metric": "rounds completed",
                "improvement": pct,
                "message": f"Your Boxing volume is {pct}% higher when Systemic Readiness is above 80%",
            })

    strength = [w for w in workouts if w.get("workout_type") == "strength"]
    if len(strength) >= 5:
        high, low = _split_by_readiness(strength, workouts, lambda w: num(w.get("total_volume")), overall)
        pct = _improvement(high, low)
        if pct > 0:
            out.append({
                "type": "strength",
                "metric": "total volume",
                "improvement": pct,
                "message": f"Your Strength volume is {pct}% higher when Overall Readiness is above 80%",
            })

    runs = [w for w in workouts if w.get("workout_type") == "endurance"]
    if len(runs) >= 5:
        high, low = _split_by_readiness(runs, workouts, _run_pace, lambda r: r["zones"]["lower_body"])
        # lower pace is better
        pct = -_improvement(high, low) if high and low else 0
        if pct > 0:
            out.append({
                "type": "endurance",
                "metric": "pace",
                "improvement": pct,
                "message": f"Your Running pace is {pct}% faster when Lower Body Readiness is above 80%",
            })
    return out


def _improvement(high: List[float], low: List[float]) -> int:
    if not high or not low:
        return 0
    avg_high = sum(high) / len(high)
    avg_low = sum(low) / len(low)
    if avg_low <= 0:
        return 0
    return int(math.floor((avg_high - avg_low) / avg_low * 100 + 0.5))
