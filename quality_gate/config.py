"""Central configuration for the content quality-gate pipeline."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Paths ──────────────────────────────────────────────────────────────────
ROOT_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("QUALITY_GATE_DATA_DIR", str(ROOT_DIR / "data")))
STORE_PATH = DATA_DIR / "store.sqlite3"
ARTICLE_OUTPUT_DIR = ROOT_DIR / "output" / "articles"

# ── API Keys ───────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
BRAVE_API_KEY = os.getenv("BRAVE_API_KEY", "")

# ── Claude settings ────────────────────────────────────────────────────────
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-5-20250929")
CLAUDE_MAX_TOKENS = 16000  # full article rewrites
CLAUDE_TEMPERATURE = 0.7
CLASSIFIER_MODEL = "claude-haiku-4-5-20251001"  # complexity verdicts
CLASSIFIER_MAX_TOKENS = 500
CLASSIFIER_TEMPERATURE = 0.3
FACT_CHECK_MODEL = "claude-sonnet-4-5-20250929"
FACT_CHECK_MAX_TOKENS = 4096
READABILITY_TEMPERATURE = 0.5

# ── Web search settings ───────────────────────────────────────────────────
BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_RESULTS_PER_QUERY = 5
RESEARCH_ENABLED = True

# ── Quality gates ─────────────────────────────────────────────────────────
MIN_FACT_SCORE = 70
MAX_FACT_ATTEMPTS = 3  # scoring rounds, the first draft included
MIN_READABILITY_SCORE = 65
MAX_READABILITY_ATTEMPTS = 5
COMPLEXITY_REJECT_CONFIDENCE = 70

# Claim confidence bands used by fact-check rewrites
CLAIM_REMOVE_BELOW = 60
CLAIM_PROTECT_FROM = 80
UNCERTAIN_PROBLEM_BELOW = 50

# ── Internal links ────────────────────────────────────────────────────────
INTERNAL_LINKS_MAX = 10
INTERNAL_LINK_MIN_RELEVANCE = 30

# ── Article defaults ──────────────────────────────────────────────────────
DEFAULT_WORD_COUNT = 1500
DEFAULT_SEO_INTENT = "informational"

# ── Timeouts ──────────────────────────────────────────────────────────────
RUN_DEADLINE_SECONDS = float(os.getenv("RUN_DEADLINE_SECONDS", "900"))
GENERATION_WATCHDOG_SECONDS = 1800  # "generating" older than this is stale
HTTP_TIMEOUT_SECONDS = 30

# ── Cost estimates ────────────────────────────────────────────────────────
BASE_RUN_COST_CENTS = 15  # ~$0.15 per generation
READABILITY_ITERATION_COST_CENTS = 3
ESTIMATED_TOKENS_PER_RUN = 15000
COST_PER_MILLION_TOKENS_USD = 3.0

# ── Duplicate detection ───────────────────────────────────────────────────
DUPLICATE_SIMILARITY_THRESHOLD = 70
DUPLICATE_WARNING_THRESHOLD = 40
