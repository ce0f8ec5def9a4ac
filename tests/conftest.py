import io

import pytest
from PIL import Image

from plantswap.config import load_config
from plantswap.imaging.regions import RegionDescriptor
from plantswap.workflow.jobs import JobStore
from plantswap.workflow.models import EditSpec


def png_bytes(color=(128, 128, 128), size=(80, 60)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeGenerator:
    """Returns scripted outputs per call; an Exception instance in the script is raised instead."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = []

    def generate(self, instruction, images, num_candidates=3, resolution=None):
        self.calls.append({"instruction": instruction, "images": list(images), "num_candidates": num_candidates})
        outcome = self.script.pop(0) if self.script else []
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)


class ScriptedVerifier:
    def __init__(self, scores, threshold=0.92, on_score=None):
        self.scores = list(scores)
        self.threshold = threshold
        self.on_score = on_score
        self.calls = []

    def score(self, input_image, candidate, edit, region):
        self.calls.append({"input_image": input_image, "candidate": candidate, "region": region})
        if self.on_score:
            self.on_score(len(self.calls))
        value = self.scores.pop(0) if self.scores else 0.0
        return value, self.threshold, "outside"


@pytest.fixture()
def cfg(tmp_path):
    return load_config(
        {
            "retry": {"retry_delay": 0, "selection_timeout": 0, "max_retries": 3},
            "chain": {"step_delay": 0},
        },
        repo_root=tmp_path,
    )


@pytest.fixture()
def source_image():
    return png_bytes((90, 120, 60))


@pytest.fixture()
def edit():
    return EditSpec(
        original="Money Tree",
        replacement="Anthurium Red",
        region=RegionDescriptor.ellipse(0.15, 0.70, 0.05, 0.07),
        pot_color="cream",
    )


@pytest.fixture()
def store():
    return JobStore()
