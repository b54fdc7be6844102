"""
Readiness Engine — zone-specific recovery scoring
===================================================
Turns recent workout history into a 0-100 readiness score for three
body zones (upper body, lower body, CNS/systemic).

Each session loads every zone according to its fatigue profile, scaled
by duration.  Load decays linearly at the zone's recovery rate; recovery
sessions (ice bath, sauna, stretching) speed that decay up for a limited
window.  Whatever load is left is subtracted from 100.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from constants import (
    FATIGUE_PROFILES,
    FATIGUED_THRESHOLD,
    LOWER_BODY_CATS,
    PRIME_THRESHOLD,
    READINESS_LOOKBACK_HOURS,
    RECOVERY_BOOSTS,
    RECOVERY_RATES,
    UPPER_BODY_CATS,
    ZONE_LABELS,
    ZONES,
)
from record_utils import as_utc, num, parse_timestamp

log = logging.getLogger("readiness")

_ZONE_FOCUS = {
    "upper_body": "upper body strength work",
    "lower_body": "a leg-focused strength session or an endurance run",
    "cns": "skill and technique work",
}


# ─── Session classification ────────────────────────────────

def _movement_key(name: Any) -> str:
    return re.sub(r"[^A-Z0-9]+", "_", str(name or "").upper()).strip("_")


def _strength_profile(exercises: Optional[List[Dict[str, Any]]]) -> str:
    upper = lower = False
    for ex in exercises or []:
        key = _movement_key((ex or {}).get("name"))
        # lower first: LEG_CURL must not count as an arm curl
        if any(cat in key for cat in LOWER_BODY_CATS):
            lower = True
        elif any(cat in key for cat in UPPER_BODY_CATS):
            upper = True
    if upper and not lower:
        return "upper_strength"
    if lower and not upper:
        return "lower_strength"
    return "full_strength"


def _session_profile(kind: Any, session_type: Any, exercises: Any) -> Optional[str]:
    kind = str(kind or "").lower()
    if kind == "martial_arts":
        st = str(session_type or "").lower()
        if "muay" in st:
            return "muay_thai"
        if "box" in st:
            return "boxing"
        return "martial_arts"
    if kind in ("strength", "gym"):
        return _strength_profile(exercises)
    if kind == "calisthenics":
        return "calisthenics"
    if kind in ("run", "endurance"):
        return "run"
    return None


def _intensity(minutes: Optional[float]) -> float:
    if not minutes or minutes <= 0:
        return 1.0
    return min(max(minutes / 60.0, 0.5), 1.5)


def _chapters(workout: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [c for c in ((workout.get("session_data") or {}).get("chapters") or []) if isinstance(c, dict)]


def workout_loads(workout: Dict[str, Any]) -> List[Tuple[str, float]]:
    """(profile, intensity) pairs a workout contributes; empty for recovery."""
    wtype = workout.get("workout_type")
    duration = num(workout.get("duration_minutes"), 0.0)

    if wtype == "hybrid":
        chapters = _chapters(workout)
        if not chapters:
            return []
        per_chapter = duration / len(chapters) if duration else 0.0
        loads = []
        for ch in chapters:
            data = ch.get("data") or {}
            profile = _session_profile(
                ch.get("type"),
                data.get("session_type") or workout.get("session_type"),
                data.get("exercises"),
            )
            if profile:
                loads.append((profile, _intensity(per_chapter)))
        return loads

    profile = _session_profile(wtype, workout.get("session_type"), workout.get("exercises"))
    if not profile:
        return []
    return [(profile, _intensity(duration))]


def recovery_sessions(workout: Dict[str, Any]) -> List[str]:
    """Recovery boosts (ice_bath / sauna / stretching) a workout triggers."""
    wtype = workout.get("workout_type")
    if wtype not in ("recovery", "hybrid"):
        return []

    found: List[str] = []
    for ch in _chapters(workout):
        if ch.get("type") != "recovery":
            continue
        cfg = ch.get("config") or ch.get("data") or {}
        for rnd in cfg.get("rounds") or []:
            kind = (rnd or {}).get("type")
            if kind == "cold" and "ice_bath" not in found:
                found.append("ice_bath")
            elif kind == "heat" and "sauna" not in found:
                found.append("sauna")
        if (cfg.get("mode") in ("stretching", "hybrid") or cfg.get("stretches")) and "stretching" not in found:
            found.append("stretching")

    if not found and wtype == "recovery":
        st = str(workout.get("session_type") or "").lower()
        if "ice" in st or "cold" in st:
            found.append("ice_bath")
        elif "sauna" in st or "heat" in st:
            found.append("sauna")
        else:
            found.append("stretching")
    return found


# ─── Scoring ───────────────────────────────────────────────

def _boost_extra_hours(zone: str, start: datetime, now: datetime, boosts: List[Tuple[datetime, str]]) -> float:
    extra = 0.0
    for b_start, name in boosts:
        mult, zones, window = RECOVERY_BOOSTS[name]
        if zone not in zones:
            continue
        lo = max(start, b_start)
        hi = min(now, b_start + timedelta(hours=window))
        if hi > lo:
            extra += (mult - 1.0) * (hi - lo).total_seconds() / 3600.0
    return extra


def calculate_readiness(workouts: Optional[List[Dict[str, Any]]], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Score zone readiness from workout history.

    Returns ``{"overall", "zones", "recovery_boosts", "recommendations"}``.
    Workouts older than the lookback window, in the future, or without a
    parseable ``created_date`` are ignored.
    """
    now = as_utc(now)
    sessions: List[Tuple[datetime, List[Tuple[str, float]]]] = []
    boosts: List[Tuple[datetime, str]] = []

    for w in workouts or []:
        started = parse_timestamp(w.get("created_date"))
        if started is None or started > now:
            continue
        if (now - started).total_seconds() / 3600.0 > READINESS_LOOKBACK_HOURS:
            continue
        for name in recovery_sessions(w):
            boosts.append((started, name))
        loads = workout_loads(w)
        if loads:
            sessions.append((started, loads))

    fatigue = {z: 0.0 for z in ZONES}
    for started, loads in sessions:
        hours = (now - started).total_seconds() / 3600.0
        for zone in ZONES:
            effective = hours + _boost_extra_hours(zone, started, now, boosts)
            recovered = RECOVERY_RATES[zone] * effective
            for profile, intensity in loads:
                load = FATIGUE_PROFILES[profile][zone] * intensity
                fatigue[zone] += max(0.0, load - recovered)

    zones = {z: round(min(max(100.0 - fatigue[z], 0.0), 100.0), 1) for z in ZONES}
    overall = int(round(sum(zones.values()) / len(zones)))

    active = {z: 1.0 for z in ZONES}
    for b_start, name in boosts:
        mult, b_zones, window = RECOVERY_BOOSTS[name]
        if now - b_start < timedelta(hours=window):
            for z in b_zones:
                active[z] = max(active[z], mult)

    return {
        "overall": overall,
        "zones": zones,
        "recovery_boosts": active,
        "recommendations": _recommendations(zones),
    }


def _recommendations(zones: Dict[str, float]) -> List[Dict[str, Any]]:
    recs: List[Dict[str, Any]] = []
    fatigued = [z for z in ZONES if zones[z] < FATIGUED_THRESHOLD]
    fresh = [z for z in ZONES if zones[z] >= PRIME_THRESHOLD]

    if fatigued:
        for z in fresh:
            recs.append({
                "type": "fresh_zone",
                "zone": z,
                "message": (
                    f"{ZONE_LABELS[z]} is Prime ({zones[z]:.0f}%). "
                    f"Target {_ZONE_FOCUS[z]} while other zones recover."
                ),
            })
    if zones["cns"] < FATIGUED_THRESHOLD:
        recs.append({
            "type": "cns_warning",
            "zone": "cns",
            "message": f"CNS readiness is {zones['cns']:.0f}%. Avoid sparring and high-intensity combat work today.",
        })
    if len(fatigued) >= 2:
        recs.append({
            "type": "recovery_needed",
            "message": "Multiple zones are fatigued. Schedule an ice bath or sauna session to accelerate recovery.",
        })
    if not fresh:
        recs.append({
            "type": "no_fresh_zone",
            "message": "No zone is above 85% readiness. Keep today's session light and technical.",
        })
    return recs


# ─── Status labels ─────────────────────────────────────────

def get_readiness_status(score: Any) -> Dict[str, str]:
    v = num(score)
    if v >= PRIME_THRESHOLD:
        return {"label": "Prime", "color": "green"}
    if v >= FATIGUED_THRESHOLD:
        return {"label": "Moderate", "color": "amber"}
    return {"label": "Fatigued", "color": "red"}


def zone_status(score: Any) -> Dict[str, str]:
    v = num(score)
    if v >= PRIME_THRESHOLD:
        return {"label": "Fresh", "emoji": "🟢", "color": "green"}
    if v >= FATIGUED_THRESHOLD:
        return {"label": "Steady", "emoji": "🟡", "color": "amber"}
    return {"label": "Fried", "emoji": "🔴", "color": "red"}


def daily_directive(readiness: Optional[Dict[str, Any]]) -> Dict[str, str]:
    if not readiness:
        return {"text": "Analyzing your data...", "color": "amber", "subtext": ""}

    overall = readiness["overall"]
    zones = readiness["zones"]
    freshest = max(ZONES, key=lambda z: zones.get(z, 0))

    if overall >= PRIME_THRESHOLD:
        return {
            "text": "Today is a High-Intensity Green Day. Push for PRs.",
            "color": "green",
            "subtext": "All systems primed for maximum output.",
        }
    if overall >= FATIGUED_THRESHOLD:
        return {
            "text": f"{ZONE_LABELS[freshest]} is Fresh. Target Controlled Intensity.",
            "color": "amber",
            "subtext": "Strategic training beats brute force.",
        }
    return {
        "text": "Systemic Fatigue Detected. Focus on Technical Flow over Power.",
        "color": "red",
        "subtext": "Recovery accelerates progress.",
    }


# ─── Timeline ──────────────────────────────────────────────

def readiness_timeline(
    workouts: Optional[List[Dict[str, Any]]],
    days: int = 14,
    now: Optional[datetime] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    """Daily overall readiness for the last ``days`` days plus recovery events.

    Each point is scored as of the end of its day (or ``now`` for today).
    """
    now = as_utc(now)
    workouts = workouts or []
    today = pd.Timestamp(now).normalize()
    day_index = pd.date_range(end=today, periods=days + 1, freq="D")

    by_day: Dict[str, List[Dict[str, Any]]] = {}
    for w in workouts:
        ts = parse_timestamp(w.get("created_date"))
        if ts is not None:
            by_day.setdefault(ts.date().isoformat(), []).append(w)

    timeline: List[Dict[str, Any]] = []
    events: List[Dict[str, Any]] = []
    for day in day_index:
        as_of = min((day + pd.Timedelta(days=1)).to_pydatetime(), now)
        score = calculate_readiness(workouts, now=as_of)["overall"]
        date_str = day.date().isoformat()
        timeline.append({"date": date_str, "readiness": score})

        for w in by_day.get(date_str, []):
            if w.get("workout_type") != "recovery":
                continue
            for ch in _chapters(w):
                if ch.get("type") != "recovery":
                    continue
                for rnd in (ch.get("config") or {}).get("rounds") or []:
                    kind = (rnd or {}).get("type")
                    if kind in ("cold", "heat"):
                        events.append({"date": date_str, "type": kind, "readiness": score})

    return {"timeline": timeline, "recovery_events": events}
