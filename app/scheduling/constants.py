from __future__ import annotations

MAX_WEEKLY_HOURS = 40
# Fraction of MAX_WEEKLY_HOURS at which the near-limit warning starts.
NEAR_LIMIT_THRESHOLD = 0.9
MINUTES_PER_DAY = 24 * 60
