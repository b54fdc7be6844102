"""
Goal Sync — derive goal progress from training and nutrition history
=====================================================================
Recomputes ``current_value`` of active goals from the user's workouts
and meals.  Matching is heuristic and driven by the goal's discipline
and title keywords, e.g. a strength goal titled "Bench Press 100kg"
tracks the heaviest logged set of any exercise whose name overlaps the
title.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from constants import (
    DEFAULT_PROTEIN_TARGET_G,
    KETO_CARB_LIMIT_G,
    KM_TO_MILES,
    PLANT_KEYWORDS,
    RACE_DISTANCES_KM,
)
from record_utils import as_utc, num, parse_timestamp

log = logging.getLogger("goal_sync")


@dataclass
class GoalUpdate:
    goal_id: Any
    title: str
    old: Any
    new: float
    status: str

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["goal"] = self.title
        return out


# ─── Shared helpers ────────────────────────────────────────

def _round1(value: float) -> float:
    """Half-up rounding to one decimal."""
    return math.floor(value * 10 + 0.5) / 10


def _same_month(ts: Optional[datetime], now: datetime) -> bool:
    return ts is not None and ts.year == now.year and ts.month == now.month


def _first_distance_km(workout: Dict[str, Any]) -> float:
    exercises = workout.get("exercises") or []
    if not exercises:
        return 0.0
    sets = (exercises[0] or {}).get("set_records") or []
    if not sets:
        return 0.0
    return num((sets[0] or {}).get("distance_km"))


def is_best_time_goal(goal: Dict[str, Any]) -> bool:
    title = str(goal.get("title") or "").lower()
    if goal.get("discipline") != "endurance":
        return False
    if "total" in title and "mile" in title:
        return False
    return any(tok in title for tok in ("5k", "10k", "marathon"))


def is_goal_completed(goal: Dict[str, Any], value: Any, missing_target_met: bool = True) -> bool:
    """Whether ``value`` meets the goal's target.

    Race-time goals are lower-is-better; everything else is reached once the
    value climbs to the target.  A goal without ``target_value`` counts as a
    zero target during auto-sync; manual progress updates pass
    ``missing_target_met=False`` so such a goal never completes.
    """
    if goal.get("target_value") in (None, "") and not missing_target_met:
        return False
    target = num(goal.get("target_value"))
    v = num(value)
    if is_best_time_goal(goal):
        return target > 0 and 0 < v <= target
    return v >= target


# ─── Per-discipline rules ──────────────────────────────────

def _exercise_matches(name: Any, title: str) -> bool:
    n = str(name or "").lower().strip()
    if not n:
        return False
    return n in title or title in n


def _strength_value(title: str, current: float, workouts: List[Dict[str, Any]]) -> Tuple[float, bool]:
    weights = [
        num(s.get("weight"))
        for w in workouts
        for ex in (w.get("exercises") or [])
        if _exercise_matches((ex or {}).get("name"), title)
        for s in ((ex or {}).get("set_records") or [])
        if isinstance(s, dict)
    ]
    max_weight = max(weights + [0.0])
    if weights and max_weight > current:
        return max_weight, True
    return current, False


def _combat_value(title: str, current: float, workouts: List[Dict[str, Any]], now: datetime) -> Tuple[float, bool]:
    value, changed = current, False
    martial = [w for w in workouts if w.get("workout_type") == "martial_arts"]

    if "sparring" in title and "round" in title:
        month_rounds = sum(
            len(w.get("exercises") or [])
            for w in martial
            if _same_month(parse_timestamp(w.get("created_date")), now)
        )
        if month_rounds != value:
            value, changed = month_rounds, True

    if "total" in title and "round" in title:
        total_rounds = sum(len(w.get("exercises") or []) for w in martial)
        if total_rounds != value:
            value, changed = total_rounds, True

    return value, changed


def _race_window(title: str) -> Optional[Tuple[float, float]]:
    for token, lo, hi in RACE_DISTANCES_KM:
        if token in title:
            return lo, hi
    return None


def _endurance_value(title: str, current: float, workouts: List[Dict[str, Any]]) -> Tuple[float, bool]:
    value, changed = current, False
    runs = [w for w in workouts if w.get("workout_type") == "run"]

    if "5k" in title or "10k" in title or "marathon" in title:
        window = _race_window(title)
        times = []
        if window:
            lo, hi = window
            for w in runs:
                if lo <= _first_distance_km(w) <= hi:
                    minutes = num(w.get("duration_minutes"))
                    times.append(minutes if minutes else math.inf)
        best = min(times) if times else math.inf
        if best != math.inf and best != value:
            value, changed = best, True

    if "total" in title and "mile" in title:
        total_miles = sum(_first_distance_km(w) for w in runs) * KM_TO_MILES
        if abs(total_miles - value) > 0.1:
            value, changed = _round1(total_miles), True

    return value, changed


def _daily_totals(meals: List[Dict[str, Any]], field: str, now: datetime) -> pd.Series:
    """Per-day sum of ``field`` over this calendar month's meals."""
    rows = []
    for m in meals:
        ts = parse_timestamp(m.get("created_date"))
        if _same_month(ts, now):
            rows.append({"day": ts.date(), "value": num(m.get(field))})
    if not rows:
        return pd.Series(dtype=float)
    return pd.DataFrame(rows).groupby("day")["value"].sum()


def plant_items(meals: List[Dict[str, Any]], since: datetime) -> set:
    items = set()
    for m in meals:
        ts = parse_timestamp(m.get("created_date"))
        if ts is None or ts <= since:
            continue
        description = str(m.get("meal_description") or "").lower()
        for raw in description.replace(";", ",").split(","):
            item = raw.strip()
            if any(kw in item for kw in PLANT_KEYWORDS):
                items.add(item)
    return items


def _nutrition_value(
    title: str,
    current: float,
    meals: List[Dict[str, Any]],
    user: Dict[str, Any],
    now: datetime,
) -> Tuple[float, bool]:
    value, changed = current, False

    if "plant" in title and "diversity" in title:
        diversity = len(plant_items(meals, now - timedelta(days=7)))
        if diversity != value:
            value, changed = diversity, True

    if "keto" in title or "carb" in title:
        carbs = _daily_totals(meals, "carbs", now)
        keto_days = int((carbs < KETO_CARB_LIMIT_G).sum())
        if keto_days != value:
            value, changed = keto_days, True

    if "protein" in title and "target" in title:
        target = num(user.get("protein_target")) or DEFAULT_PROTEIN_TARGET_G
        protein = _daily_totals(meals, "protein", now)
        target_days = int((protein >= target).sum())
        if target_days != value:
            value, changed = target_days, True

    return value, changed


# ─── Public API ────────────────────────────────────────────

def compute_goal_value(
    goal: Dict[str, Any],
    workouts: List[Dict[str, Any]],
    meals: List[Dict[str, Any]],
    user: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Tuple[float, bool]:
    """Return ``(new_value, should_update)`` for one goal."""
    now = as_utc(now)
    current = num(goal.get("current_value"))
    title = str(goal.get("title") or "").lower()
    discipline = goal.get("discipline")

    if discipline == "strength":
        return _strength_value(title, current, workouts)
    if discipline == "combat":
        return _combat_value(title, current, workouts, now)
    if discipline == "endurance":
        return _endurance_value(title, current, workouts)
    if discipline == "nutrition":
        return _nutrition_value(title, current, meals, user or {}, now)
    return current, False


def sync_goals(
    goals: List[Dict[str, Any]],
    workouts: List[Dict[str, Any]],
    meals: List[Dict[str, Any]],
    user: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> List[GoalUpdate]:
    """Compute updates for every active goal whose value changed."""
    now = as_utc(now)
    workouts = workouts or []
    meals = meals or []
    updates: List[GoalUpdate] = []
    for goal in goals or []:
        if goal.get("status") != "active":
            continue
        new_value, should_update = compute_goal_value(goal, workouts, meals, user, now)
        if not should_update:
            continue
        status = "completed" if is_goal_completed(goal, new_value) else "active"
        updates.append(GoalUpdate(goal.get("id"), goal.get("title") or "", goal.get("current_value"), new_value, status))
    return updates


def sync_user_goals(
    client: Any,
    user: Dict[str, Any],
    now: Optional[datetime] = None,
    goals: Optional[List[Dict[str, Any]]] = None,
) -> List[GoalUpdate]:
    """Fetch a user's records, recompute active goals and persist changes.

    ``goals`` may be passed pre-fetched (the maintenance job loads all
    goals once); otherwise the newest 500 goals are listed and filtered
    to the user's active ones.
    """
    uid = user["id"]
    if goals is None:
        goals = client.entities.Goal.list("-created_date", 500)
    user_goals = [g for g in goals if g.get("user_id") == uid and g.get("status") == "active"]
    if not user_goals:
        return []

    workouts = client.entities.Workout.filter({"user_id": uid}, "-created_date", 500)
    meals = client.entities.Meal.filter({"user_id": uid}, "-created_date", 500)

    updates = sync_goals(user_goals, workouts, meals, user, now)
    for u in updates:
        client.entities.Goal.update(u.goal_id, {"current_value": u.new, "status": u.status})
        log.info("Goal %s (%s): %s -> %s [%s]", u.goal_id, u.title, u.old, u.new, u.status)
    return updates
