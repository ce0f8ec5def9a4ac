from pathlib import Path

import pytest

from plantswap.config import load_config
from plantswap.imaging.regions import PreserveRegion, RegionDescriptor
from plantswap.utils.pipeline import load_edits
from plantswap.workflow.models import EditSpec, VerificationMode


def test_defaults(tmp_path):
    cfg = load_config(repo_root=tmp_path)

    assert cfg.retry.max_retries == 10
    assert cfg.verification.outside_threshold == 0.92
    assert cfg.verification.preserve_threshold == 0.95
    assert cfg.chain.failure_policy == "skip"
    assert cfg.project.plants_dir == tmp_path / "data" / "uploads" / "plants"


def test_overrides_apply_nested_sections(tmp_path):
    cfg = load_config(
        {
            "retry": {"max_retries": 4},
            "generation": {"model": "bytedance/seedream-4", "params": {"seed": 3}},
            "project": {"results_dir": str(tmp_path / "out")},
        },
        repo_root=tmp_path,
    )

    assert cfg.retry.max_retries == 4
    assert cfg.retry.ry_shrink == 0.85
    assert cfg.generation.params == {"seed": 3}
    assert cfg.project.results_dir == tmp_path / "out"
    assert isinstance(cfg.project.results_dir, Path)


def test_unknown_keys_rejected(tmp_path):
    with pytest.raises(ValueError):
        load_config({"retry": {"max_retry": 4}}, repo_root=tmp_path)


def test_edit_from_dict_loads_reference(tmp_path):
    (tmp_path / "calathea.jpg").write_bytes(b"plant-bytes")
    edit = EditSpec.from_dict(
        {
            "original": "Black ZZ Plant",
            "replacement": "Calathea",
            "plant_file": "calathea.jpg",
            "region": {"cx": 0.38, "cy": 0.58, "rx": 0.08, "ry": 0.12},
            "pot_region": {"x": 0.30, "y": 0.72, "w": 0.16, "h": 0.10},
            "pot_color": "dark gray",
            "verification": "preserve",
        },
        plants_dir=tmp_path,
    )

    assert edit.reference_images == (b"plant-bytes",)
    assert edit.region == RegionDescriptor.ellipse(0.38, 0.58, 0.08, 0.12)
    assert edit.preserve_region == PreserveRegion(0.30, 0.72, 0.16, 0.10)
    assert edit.verification == VerificationMode.PRESERVE
    edit.validate()


def test_edit_from_dict_missing_reference_raises(tmp_path):
    with pytest.raises(FileNotFoundError, match="missing.jpg"):
        load_edits(
            [{"replacement": "Succulent", "plant_file": "missing.jpg", "position": {"x": 0.15, "y": 0.78, "radius": 0.06}}],
            tmp_path,
        )


def test_edit_from_dict_without_reference(tmp_path):
    (edit,) = load_edits(
        [{"replacement": "Succulent", "position": {"x": 0.15, "y": 0.78, "radius": 0.06}}],
        tmp_path,
    )
    assert edit.reference_images == ()
    assert edit.region.is_circle
    assert edit.verification == VerificationMode.OUTSIDE
    assert edit.pot_color == "ceramic"


def test_edit_requires_region():
    with pytest.raises(ValueError):
        EditSpec.from_dict({"replacement": "Calathea"})


def test_preserve_mode_needs_preserve_region():
    edit = EditSpec(
        original="a",
        replacement="b",
        region=RegionDescriptor.ellipse(0.5, 0.5, 0.1, 0.1),
        verification=VerificationMode.PRESERVE,
    )
    with pytest.raises(ValueError):
        edit.validate()


def test_prompt_values_interpolate_hints(tmp_path):
    cfg = load_config(repo_root=tmp_path)
    edit = EditSpec(
        original="Money Tree",
        replacement="Anthurium Red",
        region=RegionDescriptor.circle(0.15, 0.78, 0.055),
        pot_color="cream",
    )
    text = cfg.prompts.edit_prompt.format(**edit.prompt_values())
    assert "Anthurium Red" in text
    assert "cream pot" in text
    review = cfg.prompts.review_prompt.format(**edit.prompt_values())
    assert "'Money Tree'" in review
    assert '"replaced": true|false' in review
