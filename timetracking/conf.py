# timetracking/conf.py
from django.conf import settings

DEFAULTS = {
    # Seconds waited between two chapters of a batch request.
    "BATCH_PACING_DELAY": 0.1,
    # Upper bound on records read per chapter in a batch request.
    "BATCH_PAGE_SIZE": 1000,
}


def get_setting(name: str):
    """Read one key of the TIME_TRACKING settings dict, falling back to DEFAULTS."""
    if name not in DEFAULTS:
        raise KeyError(f"unknown TIME_TRACKING setting: {name}")
    overrides = getattr(settings, "TIME_TRACKING", None) or {}
    return overrides.get(name, DEFAULTS[name])
