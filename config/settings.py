"""
Configuration settings for CivicLens.

Centralized configuration for all agents and pipeline parameters.
"""

import os
from pathlib import Path

# Project paths (resolve against the working directory, not the install location)
DATA_ROOT = Path(os.getenv("CIVICLENS_DATA_ROOT", "data"))
OUTPUT_ROOT = Path(os.getenv("CIVICLENS_OUTPUT_ROOT", "output"))

# Record store (JSON file backend)
STORE_PATH = Path(os.getenv("CIVICLENS_STORE_PATH", str(DATA_ROOT / "civiclens_store.json")))

# Ingestion Agent
MIN_TEXT_LENGTH = 10
MIN_MEANINGFUL_WORDS = 3
SPAM_REPEAT_LENGTH = 6  # Leading run of one character that counts as spam

# Understanding Agent (fingerprints)
FINGERPRINT_DIMENSIONS = 384
CATEGORY_BAND_SIZE = 30
URGENCY_BAND_OFFSET = 300
URGENCY_BAND_SIZE = 20
HASHED_TOKEN_INCREMENT = 0.1

# Discovery Agent (clustering)
MIN_CLUSTERS = 3
MAX_CLUSTERS = 8
COMPLAINTS_PER_CLUSTER = 3
MAX_ITERATIONS = 20
CONVERGENCE_THRESHOLD = 0.999
SAMPLE_WITH_REPLACEMENT = True
LINK_CONFIDENCE = 0.8
CLUSTERING_SEED = int(os.environ["CIVICLENS_SEED"]) if os.getenv("CIVICLENS_SEED") else None

# Explainability Agent
MAX_KEYWORDS = 8
MAX_SAMPLE_COMPLAINTS = 3

# Orchestrator
AGENT_LOG_LIMIT = 50
STALE_RUN_TIMEOUT_MINUTES = 30  # A "processing" run older than this no longer blocks new runs

# Sample data
SAMPLE_COMPLAINT_COUNT = 24

# Logging
LOG_LEVEL = os.getenv("CIVICLENS_LOG_LEVEL", "INFO")  # DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "civiclens.log"
