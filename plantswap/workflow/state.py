from typing import List, Optional, TypedDict

from plantswap.imaging.regions import RegionDescriptor
from plantswap.workflow.models import AttemptRecord, Candidate, EditSpec, LogEntry


class StepState(TypedDict, total=False):
    job: object
    step_index: int
    edit: EditSpec
    input_image: bytes

    # Mask in effect for the next/current attempt
    region: RegionDescriptor

    # Generator outputs
    attempt: int
    canvas: Optional[bytes]
    pending_images: List[bytes]
    generation_error: Optional[str]
    attempt_log: List[LogEntry]

    # Verification outputs
    attempts: List[AttemptRecord]
    accepted: Optional[Candidate]
    manual: bool

    # Loop control
    cancelled: bool
