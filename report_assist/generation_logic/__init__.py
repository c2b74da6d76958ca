"""Generation logic package.

This package groups the orchestration that turns a template or raw prompt into
tracked, callback-driven generation state, plus the NDJSON bridge used by the
streaming endpoint. Keeping them here allows `report_assist/api/routes.py` to
stay focused on HTTP routing.
"""

from .orchestrator import GenerationOrchestrator  # noqa: F401
from .stream_events import stream_generation_events  # noqa: F401
