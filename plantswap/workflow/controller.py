from __future__ import annotations

import logging

from plantswap.workflow.graph import build_step_workflow, recursion_limit
from plantswap.workflow.models import EditSpec, StepResult, StepStatus
from plantswap.workflow.state import StepState

logger = logging.getLogger(__name__)


class RetryController:
    """
    Runs the verified attempt loop for one edit. The edit's region is copied into the
    loop state; adjustments never touch the EditSpec itself.
    """

    def __init__(self, cfg, generator, verifier) -> None:
        self.cfg = cfg
        self.app = build_step_workflow(cfg, generator, verifier)

    def run(self, job, step_index: int, edit: EditSpec, input_image: bytes) -> StepResult:
        state: StepState = {
            "job": job,
            "step_index": step_index,
            "edit": edit,
            "input_image": input_image,
            "region": edit.region,
            "attempt": 0,
            "attempts": [],
            "pending_images": [],
            "attempt_log": [],
            "accepted": None,
            "manual": False,
            "cancelled": False,
        }
        final_state = self.app.invoke(
            state,
            config={"recursion_limit": recursion_limit(self.cfg.retry.max_retries)},
        )

        attempts = final_state.get("attempts") or []
        accepted = final_state.get("accepted")
        if accepted is not None:
            status = StepStatus.SUCCEEDED
        elif final_state.get("cancelled") or job.cancelled:
            status = StepStatus.CANCELLED
        else:
            status = StepStatus.FAILED
        logger.debug("Step %s finished: %s after %s attempt(s)", step_index + 1, status.value, len(attempts))
        return StepResult(
            step_index=step_index,
            edit=edit,
            status=status,
            attempts=attempts,
            winner=accepted,
            manual=bool(final_state.get("manual")) if accepted is not None else False,
        )
