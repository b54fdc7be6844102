"""
Shared constants used across multiple modules.
Single source of truth for readiness zones, fatigue profiles and
movement categories used for body-part detection.
"""

ZONES = ("upper_body", "lower_body", "cns")

ZONE_LABELS = {
    "upper_body": "Upper Body",
    "lower_body": "Lower Body",
    "cns": "CNS",
}

# Recovery speed, readiness points regained per hour
RECOVERY_RATES = {
    "upper_body": 4.5,
    "lower_body": 3.8,
    "cns": 3.2,
}

# Fatigue load (%) a one-hour session puts on each zone
FATIGUE_PROFILES = {
    "boxing":         {"upper_body": 85, "lower_body": 20, "cns": 90},
    "muay_thai":      {"upper_body": 80, "lower_body": 85, "cns": 95},
    "martial_arts":   {"upper_body": 80, "lower_body": 50, "cns": 90},
    "upper_strength": {"upper_body": 90, "lower_body": 0,  "cns": 40},
    "lower_strength": {"upper_body": 10, "lower_body": 90, "cns": 50},
    "full_strength":  {"upper_body": 60, "lower_body": 60, "cns": 50},
    "calisthenics":   {"upper_body": 70, "lower_body": 40, "cns": 35},
    "run":            {"upper_body": 10, "lower_body": 85, "cns": 40},
}

# name -> (multiplier, zones, active window in hours)
RECOVERY_BOOSTS = {
    "ice_bath":   (2.0, ("upper_body", "lower_body"), 24),
    "sauna":      (1.8, ("upper_body", "lower_body", "cns"), 48),
    "stretching": (1.3, ("upper_body", "lower_body"), 12),
}

READINESS_LOOKBACK_HOURS = 7 * 24
PRIME_THRESHOLD = 85
FATIGUED_THRESHOLD = 60

# Movement categories for body-part detection (matched against exercise names)
UPPER_BODY_CATS = {
    "PULL_UP", "ROW", "SHOULDER_PRESS", "BENCH_PRESS", "CURL",
    "LATERAL_RAISE", "TRICEPS_EXTENSION", "CHEST_FLY", "PUSHUP", "PUSH_UP",
    "DIP", "T_BAR_ROW", "OVERHEAD_PRESS", "CHIN_UP", "PULLDOWN",
}
LOWER_BODY_CATS = {
    "SQUAT", "LUNGE", "LEG_PRESS", "LEG_CURL", "LEG_EXTENSION",
    "CALF_RAISE", "HIP", "GLUTE", "DEADLIFT", "STEP_UP",
}

# Goal sync
KM_TO_MILES = 0.621371
KETO_CARB_LIMIT_G = 50
DEFAULT_PROTEIN_TARGET_G = 150

# (title token, min km, max km); checked in this order
RACE_DISTANCES_KM = (
    ("5k", 4.8, 5.2),
    ("10k", 9.8, 10.2),
    ("half marathon", 20.0, 22.0),
    ("marathon", 41.0, 43.0),
)

PLANT_KEYWORDS = (
    "vegetable", "fruit", "bean", "lentil", "grain", "rice", "quinoa",
    "spinach", "kale", "broccoli", "carrot", "apple", "banana", "berry",
    "nut", "seed",
)

BURN_MESSAGE_TTL_HOURS = 24
