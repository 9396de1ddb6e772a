"""
FantaGPT API: entry point and re-exports.

Code lives in fantagpt/ modules:
- config.py:      APP_CONFIG dataclass configs, env overrides
- constants.py:   Position tables, FPL URLs, conversion helpers
- models.py:      Domain dataclasses, enums, Pydantic schemas
- rules.py:       Squad validation and roster statistics
- cache.py:       DataCache for upstream payloads
- services.py:    HTTP client, circuit breaker, FPL API fetchers
- repository.py:  Team storage (memory / JSON file)
- recommender.py: Greedy squad recommender
- analysis.py:    Team, player and formation analysis
- endpoints.py:   FastAPI app + API endpoints

Tests import from `main`; star-imports re-export everything.
"""

import logging
import os

from fantagpt.config import *        # noqa: F401,F403
from fantagpt.constants import *     # noqa: F401,F403
from fantagpt.models import *        # noqa: F401,F403
from fantagpt.cache import *         # noqa: F401,F403
from fantagpt.rules import *         # noqa: F401,F403
from fantagpt.services import *      # noqa: F401,F403
from fantagpt.repository import *    # noqa: F401,F403
from fantagpt.recommender import *   # noqa: F401,F403
from fantagpt.analysis import *      # noqa: F401,F403
from fantagpt.endpoints import app   # noqa: F401

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
