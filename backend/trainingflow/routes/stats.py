"""
Stats API route - dashboard counters computed from one consistent snapshot.
"""

import time

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from trainingflow.database import get_db
from trainingflow.services.stats import compute_stats
from trainingflow.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


@router.get("/api/stats")
def get_stats(db: Session = Depends(get_db)):
    """UID and student counts by status plus the per-role workload counters."""
    start_time = time.time()
    stats = compute_stats(db)
    log_with_context(logger, "INFO", "Stats computed",
                     extra_data={"total_uids": stats["total_uids"],
                                 "duration_ms": round((time.time() - start_time) * 1000, 2)})
    return stats
