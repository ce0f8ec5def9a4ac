from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class ProjectConfig:
    data_root: Path
    collections_dir: Path
    plants_dir: Path
    results_dir: Path


@dataclass
class GenerationConfig:
    model: str = "openai/gpt-image-1.5"
    num_candidates: int = 3
    resolution: str = "4K"
    output_format: str = "png"
    download_timeout: int = 120
    mock: bool = False
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VerificationConfig:
    outside_threshold: float = 0.92
    preserve_threshold: float = 0.95
    working_width: int = 400
    tile_size: int = 100


@dataclass
class RetryConfig:
    max_retries: int = 10
    retry_delay: float = 2.0
    selection_timeout: float = 3.0
    ry_shrink: float = 0.85
    cy_shift: float = 0.02


@dataclass
class ChainConfig:
    failure_policy: str = "skip"
    step_delay: float = 2.0
    max_input_width: int = 2400
    jpeg_quality: int = 95


@dataclass
class ReviewConfig:
    enabled: bool = False
    openai_model: str = "gpt-5.2"


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class PromptsConfig:
    edit_prompt: str = (
        "Replace ONLY the plant foliage inside the red marked area with {replacement}.\n\n"
        "CRITICAL REQUIREMENTS:\n"
        "- The {pot_color} pot MUST remain EXACTLY unchanged\n"
        "- Same pot color, shape, size, and position\n"
        "- Do NOT modify anything outside the red ellipse\n"
        "- Remove the red marker in the final image\n"
        "- Keep the same lighting and style\n"
        "The first image is the photo to edit. Any further images show the {replacement} to use as reference."
    )

    review_prompt: str = (
        "You compare a product photograph BEFORE and AFTER a plant replacement.\n\n"
        "CHECK:\n"
        "A) Replacement: the plant that was '{original}' now looks like '{replacement}'.\n"
        "B) Preservation: the {pot_color} pot, the other plants, the background and lighting "
        "are unchanged.\n\n"
        "Return valid JSON:\n"
        "{{\n"
        '  "replaced": true|false,\n'
        '  "preserved": true|false,\n'
        '  "notes": "<one or two sentences on what changed>"\n'
        "}}\n"
    )


@dataclass
class AppConfig:
    project: ProjectConfig
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    review: ReviewConfig = field(default_factory=ReviewConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    prompts: PromptsConfig = field(default_factory=PromptsConfig)


def _apply(section: Any, values: Dict[str, Any]) -> None:
    known = {f.name for f in fields(section)}
    for key, value in values.items():
        if key not in known:
            raise ValueError(f"Unknown config key {type(section).__name__}.{key}")
        current = getattr(section, key)
        if is_dataclass(current) and isinstance(value, dict):
            _apply(current, value)
        elif isinstance(current, Path):
            setattr(section, key, Path(value))
        else:
            setattr(section, key, value)


def load_config(overrides: Optional[Dict[str, Any]] = None, repo_root: Optional[Path] = None) -> AppConfig:
    repo_root = repo_root or Path.cwd()
    data_root = repo_root / "data"
    project = ProjectConfig(
        data_root=data_root,
        collections_dir=data_root / "uploads" / "collections",
        plants_dir=data_root / "uploads" / "plants",
        results_dir=data_root / "uploads" / "results",
    )
    cfg = AppConfig(project=project)
    if overrides:
        _apply(cfg, overrides)
    return cfg
