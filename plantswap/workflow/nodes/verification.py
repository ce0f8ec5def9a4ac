from typing import Dict, List, Optional

from plantswap.workflow.models import AttemptRecord, Candidate
from plantswap.workflow.state import StepState


def candidate_label(attempt: int, position: int) -> str:
    return f"{attempt}{chr(ord('A') + position)}"


def find_candidate(attempts: List[AttemptRecord], label: Optional[str]) -> Optional[Candidate]:
    if not label:
        return None
    for record in attempts:
        for candidate in record.candidates:
            if candidate.label == label:
                return candidate
    return None


def verify_candidates_node(state: StepState, verifier) -> Dict[str, object]:
    """
    Scores every candidate of the attempt in return order. The first passing one is accepted;
    the rest are still recorded so they can be picked manually.
    """
    job = state["job"]
    step_index = state["step_index"]
    attempt = state["attempt"]
    log = list(state.get("attempt_log") or [])
    accepted = None
    candidates: List[Candidate] = []

    for position, image in enumerate(state.get("pending_images") or []):
        score, threshold, mode = verifier.score(state["input_image"], image, state["edit"], state["region"])
        candidate = Candidate(
            label=candidate_label(attempt, position),
            step_index=step_index,
            attempt=attempt,
            image=image,
            score=score,
            threshold=threshold,
            mode=mode,
        )
        candidates.append(candidate)
        job.publish_candidate(candidate)
        if candidate.passed and accepted is None:
            accepted = candidate
            log.append(job.log(f"Version {candidate.label} PASSED ({score * 100:.1f}% {mode} match)"))
        elif not candidate.passed:
            log.append(job.log(f"Version {candidate.label} failed ({score * 100:.1f}% {mode} match)"))

    record = AttemptRecord(
        index=attempt,
        region=state["region"],
        candidates=candidates,
        log=log,
        error=state.get("generation_error"),
        canvas=state.get("canvas"),
    )
    attempts = list(state.get("attempts") or []) + [record]
    update: Dict[str, object] = {
        "attempts": attempts,
        "pending_images": [],
        "attempt_log": [],
        "accepted": accepted,
        "manual": False,
    }

    chosen = find_candidate(attempts, job.selection_for(step_index))
    if chosen is not None:
        job.log(f"Using user-selected version {chosen.label}")
        update.update(accepted=chosen, manual=True)
    return update
