from typing import Dict

from plantswap.imaging.encoding import image_size
from plantswap.workflow.state import StepState


def adjust_region_node(state: StepState, ry_shrink: float, cy_shift: float, retry_delay: float) -> Dict[str, object]:
    """
    Shrinks the mask vertically and lifts it away from the pot before the next attempt,
    then waits out the rate-limit delay.
    """
    job = state["job"]
    width, height = image_size(state["input_image"])
    region = state["region"].shrunk(ry_shrink, cy_shift, width, height)
    job.log(f"No version passed verification, retrying with smaller mask (ry={region.ry:.3f}, cy={region.cy:.3f})")
    if job.sleep(retry_delay):
        return {"region": region, "cancelled": True}
    return {"region": region}
