"""
Application Configuration and Constants
=======================================

This module contains all global configuration values, constants, and defaults used
throughout the Model Kombat configuration core. It serves as a single source of truth for:

- OpenRouter endpoint and request identification headers
- Network timeouts and catalog cache lifetime
- Refinement round limits and configuration defaults
- Storage namespaces for the local and account-scoped backends
- The curated list of flagship model identifiers

Note:
    All constants use UPPER_SNAKE_CASE naming convention. Modify these values to
    change application-wide behavior without touching business logic.

Author: Model Kombat Project
"""

import os
from pathlib import Path

# ============================================================================
# APPLICATION SETTINGS
# ============================================================================

APP_NAME = "Model Kombat"
SITE_URL = "https://github.com/model-kombat/model-kombat"

# ============================================================================
# OPENROUTER API
# ============================================================================

OPENROUTER_API_BASE = "https://openrouter.ai/api/v1"

# Model id that defers model choice to OpenRouter ("automatic selection")
AUTO_MODEL_ID = "openrouter/auto"

# ============================================================================
# NETWORK CONFIGURATION
# ============================================================================
# Every remote call is bounded. An expired timeout is reported as a network failure.

NETWORK_TIMEOUT_SECONDS = 30
CONNECTION_TEST_TIMEOUT_SECONDS = 10
CHAT_TIMEOUT_SECONDS = 120

# Client-side throttle: minimum spacing between requests and a per-minute budget
MIN_REQUEST_INTERVAL_SECONDS = 0.1
REQUESTS_PER_MINUTE = 50

# Served from cache when younger than this and no forced refresh is requested
CATALOG_CACHE_SECONDS = 24 * 60 * 60

# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================

LOCAL_USER_ID = "local-user"

MIN_REFINEMENT_ROUNDS = 1
MAX_REFINEMENT_ROUNDS = 10
DEFAULT_REFINEMENT_ROUNDS = 3

# ============================================================================
# STORAGE
# ============================================================================

# Namespace key of the local JSON store
LOCAL_STORAGE_NAMESPACE = "model-kombat-llm-config"

LOCAL_CONFIG_PATH = Path(
    os.environ.get("MODELKOMBAT_CONFIG_PATH", str(Path.home() / ".modelkombat_llm_config.json"))
)

# Firestore collection holding one document per user id
FIRESTORE_COLLECTION = "llm-configs"

# ============================================================================
# PREFERENCE TRACKING
# ============================================================================

# Below this many judgments recommendations fall back to the caller's order
MIN_JUDGMENTS_FOR_RECOMMENDATION = 5
TOP_MODELS_LIMIT = 5

# ============================================================================
# FLAGSHIP MODELS
# ============================================================================
# Best releases of each notable provider. Matching against catalog ids is a loose
# bidirectional substring test, so slugs here need not track dated variants.

FLAGSHIP_MODEL_IDS = [
    # OpenAI
    "openai/gpt-5",
    "openai/gpt-4.1",
    "openai/o3",
    "openai/o1-preview",
    "openai/gpt-4o",

    # Anthropic
    "anthropic/claude-4-opus",
    "anthropic/claude-4-sonnet",
    "anthropic/claude-3.5-sonnet",
    "anthropic/claude-3-opus",

    # Google
    "google/gemini-2.5-pro",
    "google/gemini-2.0-pro",
    "google/gemini-2.0-flash-exp:free",
    "google/gemini-pro-1.5",

    # Meta
    "meta-llama/llama-3.1-405b-instruct",
    "meta-llama/llama-3.1-70b-instruct",
    "meta-llama/llama-3.2-90b-vision-instruct",

    # Mistral
    "mistralai/mistral-large",
    "mistralai/mixtral-8x22b",

    # xAI
    "x-ai/grok-2",
    "x-ai/grok-2-vision",

    # Alibaba
    "qwen/qwen3-235b",
    "qwen/qwen-2.5-72b-instruct",
    "qwen/qwq-32b-preview",

    # Cohere
    "cohere/command-r-plus",

    # Let OpenRouter choose
    AUTO_MODEL_ID,
]
