"""Default settings for clipextract.

Plain module-level constants.  Per-call overrides go through
:class:`clipextract.items.ExtractOptions`; scorer weights through
:class:`clipextract.items.ScoreWeights`.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Size guard
# ---------------------------------------------------------------------------
MAX_CONTENT_SIZE = 5 * 1024 * 1024  # bytes (UTF-8)

# Oversized input is cut to this share of the maximum before cleanup.
TRUNCATE_RATIO = 0.8

TRUNCATION_MARKER = '<p data-truncated="true">[content truncated]</p>'

# ---------------------------------------------------------------------------
# Fallback thresholds (plain-text characters)
# ---------------------------------------------------------------------------
MIN_CONTENT_LENGTH = 50
BODY_FALLBACK_THRESHOLD = 500

EXCERPT_LENGTH = 200

# ---------------------------------------------------------------------------
# Filenames
# ---------------------------------------------------------------------------
DISALLOWED_FILENAME_CHARS = "[]#^"
DEFAULT_FILENAME = "Untitled"

# ---------------------------------------------------------------------------
# Cooperative pacing
# ---------------------------------------------------------------------------
# Strategies invoke the caller's yield callback once per this many items.
YIELD_INTERVAL = 8

# ---------------------------------------------------------------------------
# Strategy limits
# ---------------------------------------------------------------------------
# Upper bound on containers a single strategy serialises and scores.
MAX_CANDIDATE_CONTAINERS = 200

# Minimum text (characters) for a block to join an aggregate candidate.
MIN_BLOCK_TEXT_LATIN = 25
MIN_BLOCK_TEXT_NON_LATIN = 8

# Minimum text (characters) for a semantic container to be considered.
MIN_CONTAINER_TEXT = 20

# ---------------------------------------------------------------------------
# Languages written right-to-left
# ---------------------------------------------------------------------------
RTL_LANGUAGES: frozenset[str] = frozenset({"ar", "he", "iw", "fa", "ur", "yi", "ps", "dv"})

DEFAULT_LANGUAGE = "en"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
