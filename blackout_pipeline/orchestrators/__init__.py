"""Run orchestration.

Composes the stages end to end:
1. Load and mosaic both dates
2. Detect change → vectorise
3. Spatial filter
4. Socioeconomic join → run summary
"""

from blackout_pipeline.orchestrators.blackout_run import (
    PipelineResult,
    detect_blackout,
    run_blackout_pipeline,
    summarise,
    write_summary,
)

__all__ = [
    "PipelineResult",
    "detect_blackout",
    "run_blackout_pipeline",
    "summarise",
    "write_summary",
]
