from typing import Dict

from plantswap.workflow.nodes.verification import find_candidate
from plantswap.workflow.state import StepState


def await_selection_node(state: StepState, timeout: float) -> Dict[str, object]:
    job = state["job"]
    step_index = state["step_index"]
    attempts = state.get("attempts") or []
    if not any(record.candidates for record in attempts):
        job.log("No versions were generated; nothing to select")
        return {"accepted": None}

    job.pending_selection = True
    job.log("No version passed. You can select one manually or it will skip.")
    label = job.wait_for_selection(step_index, timeout)
    job.pending_selection = False
    if job.cancelled:
        return {"accepted": None, "cancelled": True}

    chosen = find_candidate(attempts, label)
    if chosen is None:
        return {"accepted": None}
    job.log(f"Using user-selected version {chosen.label}")
    return {"accepted": chosen, "manual": True}
