from typing import Dict

from plantswap.imaging.masks import render_overlay
from plantswap.integrations.replicate_client import EmptyGenerationError, GenerationError, ReplicateClient
from plantswap.workflow.state import StepState


def build_instruction(template: str, edit) -> str:
    return template.format(**edit.prompt_values())


def generate_candidates_node(
    state: StepState,
    generator: ReplicateClient,
    prompt_template: str,
    num_candidates: int,
    max_retries: int,
    resolution: str | None = None,
) -> Dict[str, object]:
    """
    Top of an attempt: checks cancellation, masks the step input and asks the model for candidates.
    """
    job = state["job"]
    if job.cancelled:
        return {"cancelled": True}

    attempt = state.get("attempt", 0) + 1
    job.current_attempt = attempt
    log = [job.log(f"Attempt {attempt}/{max_retries}...")]

    edit = state["edit"]
    canvas = render_overlay(state["input_image"], state["region"])
    images = [canvas, *edit.reference_images]
    error = None
    outputs = []
    try:
        outputs = generator.generate(
            build_instruction(prompt_template, edit),
            images,
            num_candidates=num_candidates,
            resolution=resolution,
        )
    except EmptyGenerationError as err:
        error = str(err)
        log.append(job.log(f"Attempt {attempt}: no images returned ({err})"))
    except GenerationError as err:
        error = str(err)
        log.append(job.log(f"Attempt {attempt} error: {err}"))

    return {
        "attempt": attempt,
        "canvas": canvas,
        "pending_images": outputs,
        "generation_error": error,
        "attempt_log": log,
    }
