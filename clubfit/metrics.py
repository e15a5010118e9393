from __future__ import annotations
from typing import Optional

# MET values (Metabolic Equivalent of Task)
MET_VALUES = {
    "RUNNING": 9.8,    # running at ~6 mph
    "STRENGTH": 6.0,   # general weight training
    "WALKING": 3.8,    # walking at 3.5 mph
    "SPORTS": 7.0,     # general sports activity
}

DEFAULT_WEIGHT_KG = 70


def compute_pace(duration_seconds: float | int | None, distance_km: float | int | None) -> Optional[float]:
    """
    Pace in minutes per km.
    Returns None when distance is missing or zero, pace is undefined there.
    """
    if duration_seconds is None or not distance_km:
        return None
    return (float(duration_seconds) / 60.0) / float(distance_km)


def estimate_calories(category: str, duration_minutes: float | int, weight_kg: float | int = DEFAULT_WEIGHT_KG) -> int:
    """
    calories = MET x weight (kg) x duration (hours), rounded to the nearest whole calorie.
    estimate_calories("RUNNING", 30) -> 343
    """
    key = getattr(category, "value", category)
    met = MET_VALUES[key]
    hours = float(duration_minutes) / 60.0
    # round half up, python's round() would send 342.5 to 342
    return int(met * float(weight_kg) * hours + 0.5)


#making nicer formats for summary screens
def format_duration(seconds: int | float) -> str:
    """
    3725 -> '1:02:05'
    125  -> '2:05'   (no leading zero hour)
    """
    seconds = int(seconds)
    hrs = seconds // 3600
    mins = (seconds % 3600) // 60
    secs = seconds % 60
    if hrs > 0:
        return f"{hrs}:{mins:02d}:{secs:02d}"
    return f"{mins}:{secs:02d}"


def format_pace(minutes_per_km: float) -> str:
    """
    5.0  -> '5:00 /km'
    5.25 -> '5:15 /km'
    """
    mins = int(minutes_per_km)
    secs = int((minutes_per_km - mins) * 60 + 0.5)
    if secs == 60:
        # 5.999 would otherwise print as 5:60
        mins += 1
        secs = 0
    return f"{mins}:{secs:02d} /km"


def format_distance(km: float) -> str:
    """
    Under a kilometre shows metres: 0.4 -> '400m'
    Otherwise two decimals: 5 -> '5.00 km'
    """
    if km < 1:
        return f"{int(km * 1000 + 0.5)}m"
    return f"{km:.2f} km"
