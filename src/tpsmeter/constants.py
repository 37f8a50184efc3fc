"""TPS meter constants.

This module provides a single source of truth for the tuning values used
by the rate estimator, the display coordinator and the staleness reaper.
Configuration can override some of them (window length, update interval,
burst thresholds); the rest are fixed.
"""

from __future__ import annotations

from typing import Literal

# =============================================================================
# Rate Calculation
# =============================================================================

#: Minimum elapsed time (ms) before displaying a rate, avoids startup spikes
MIN_TPS_ELAPSED_MS: float = 250

#: Default rolling window for instantaneous rate calculation (ms)
DEFAULT_ROLLING_WINDOW_MS: float = 1000

#: Maximum number of entries kept in an estimator's ring buffer
MAX_BUFFER_SIZE: int = 100

#: Floor for the measured window span (seconds) to avoid division blow-up
MIN_WINDOW_DURATION_SECONDS: float = 0.1

#: Smallest EWMA time step (ms) between two recordings
MIN_SMOOTHING_STEP_MS: float = 1

# =============================================================================
# Burst Smoothing
# =============================================================================

#: Count above which a single recording is treated as a burst
BURST_TOKEN_THRESHOLD: int = 50

#: Count above which a single recording is treated as a large burst
LARGE_BURST_THRESHOLD: int = 200

#: EWMA half-life (ms) for ordinary streaming increments
DEFAULT_EWMA_HALF_LIFE_MS: float = 500

#: EWMA half-life (ms) for bursts
BURST_EWMA_HALF_LIFE_MS: float = 3000

#: EWMA half-life (ms) for large bursts (whole paragraphs, tool output)
LARGE_BURST_EWMA_HALF_LIFE_MS: float = 5000

# =============================================================================
# Display
# =============================================================================

#: Default throttle interval between display flushes (ms)
DEFAULT_UPDATE_INTERVAL_MS: float = 50

#: Fixed floor between notification-surface emissions (ms)
MIN_TOAST_INTERVAL_MS: float = 150

#: Default toast duration (ms)
DEFAULT_TOAST_DURATION_MS: float = 20000

#: Duration of the final stats toast (ms)
FINAL_STATS_DURATION_MS: float = 2000

#: Title used on every notification
TOAST_TITLE: str = "TPS Meter"

#: Default rate below which colour coding reports "slow"
DEFAULT_SLOW_TPS_THRESHOLD: float = 10

#: Default rate above which colour coding reports "fast"
DEFAULT_FAST_TPS_THRESHOLD: float = 50

#: Multiplier applied to MIN_TPS_ELAPSED_MS when deciding stream activity
ACTIVITY_WINDOW_MULTIPLIER: int = 4

#: Characters of a session id shown in background-session labels
SESSION_LABEL_LENGTH: int = 8

DisplayFormat = Literal["compact", "verbose", "minimal"]
ToastVariant = Literal["info", "success", "warning", "error"]

# =============================================================================
# Memory Management
# =============================================================================

#: Maximum age of an inactive stream before eviction (5 minutes in ms)
MAX_MESSAGE_AGE_MS: float = 5 * 60 * 1000

#: Minimum interval between staleness sweeps (30 seconds in ms)
CLEANUP_INTERVAL_MS: float = 30_000

# =============================================================================
# Token Counting
# =============================================================================

TokenHeuristic = Literal["chars_div_4", "chars_div_3", "words_div_0_75"]

#: Character divisor for the general heuristic (chars / 4)
CHARS_DIV_4: float = 4

#: Character divisor for the code heuristic (chars / 3)
CHARS_DIV_3: float = 3

#: Word divisor for the prose heuristic (words / 0.75)
WORDS_DIV_0_75: float = 0.75

# =============================================================================
# Event Filtering
# =============================================================================

#: Finish reasons that invalidate final statistics
INVALID_FINISH_REASONS: frozenset[str] = frozenset({"tool-calls", "unknown"})

#: Part types that contribute to token counting
COUNTABLE_PART_TYPES: frozenset[str] = frozenset({"text", "reasoning"})

#: Session id used when an event omits one
DEFAULT_SESSION_ID: str = "default"
