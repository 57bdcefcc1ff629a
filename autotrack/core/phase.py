"""Display-phase derivation.

The panel to show is recomputed from two independent signals every time it
is needed: the scan status the backend reports and the local driver state.
Nothing here is stored, so a restarted client (driver state lost, backend
status intact) lands on the right panel, usually the resume banner.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from autotrack.core.models import (
    AWAITING_CONFIRMATION, CANCELLED, COMPLETED, CRAWLING, DISCOVERING,
    FAILED, NICHE_DETECTED, ChunkProgress,
)


class DisplayPhase(Enum):
    IDLE = "idle"
    PHASE1 = "phase1"
    PHASE2 = "phase2"
    NICHE = "niche"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    RESUME = "resume"
    WAITING = "waiting"    # backend busy, nothing for the client to drive


@dataclass(frozen=True)
class PhaseFlags:
    is_phase1_active: bool
    is_phase2_active: bool
    is_niche_phase: bool
    is_completed: bool
    is_failed: bool
    is_cancelled: bool
    is_idle: bool
    needs_resume: bool
    display: DisplayPhase


def derive_phase(active_scan_id: Optional[str], backend_status: Optional[str],
                 progress: ChunkProgress) -> PhaseFlags:
    status = (backend_status or "").upper() or None
    processing = bool(active_scan_id) and progress.is_processing
    # the backend has the last word: a local loop on a finished scan is stale
    terminal = status in (COMPLETED, FAILED, CANCELLED)
    local_error = not processing and bool(progress.error)

    phase1 = processing and not terminal and progress.phase in ("phase1", "detecting_niche")
    phase2 = processing and not terminal and progress.phase in ("phase2", "finalizing")
    niche = (bool(active_scan_id) and not processing and not local_error
             and status in (NICHE_DETECTED, AWAITING_CONFIRMATION))
    completed = status == COMPLETED
    failed = status == FAILED or local_error
    cancelled = status == CANCELLED
    idle = not active_scan_id or completed or failed or cancelled
    resume = (bool(active_scan_id) and not processing and not niche and not completed and not failed
              and not cancelled and status in (CRAWLING, DISCOVERING))

    # guard order is the precedence order; FAILED outranks RESUME
    if not active_scan_id:
        display = DisplayPhase.IDLE
    elif phase1:
        display = DisplayPhase.PHASE1
    elif phase2:
        display = DisplayPhase.PHASE2
    elif niche:
        display = DisplayPhase.NICHE
    elif completed:
        display = DisplayPhase.COMPLETED
    elif failed:
        display = DisplayPhase.FAILED
    elif cancelled:
        display = DisplayPhase.CANCELLED
    elif resume:
        display = DisplayPhase.RESUME
    else:
        display = DisplayPhase.WAITING

    return PhaseFlags(
        is_phase1_active=phase1,
        is_phase2_active=phase2,
        is_niche_phase=niche,
        is_completed=completed,
        is_failed=failed,
        is_cancelled=cancelled,
        is_idle=idle,
        needs_resume=resume,
        display=display,
    )
