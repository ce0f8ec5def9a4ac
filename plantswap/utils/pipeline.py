from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from plantswap.config import AppConfig
from plantswap.imaging.similarity import SimilarityVerifier
from plantswap.integrations.openai_client import VisionReviewer
from plantswap.integrations.replicate_client import ReplicateClient, ReplicateModels
from plantswap.workflow.chain import EditChain
from plantswap.workflow.controller import RetryController
from plantswap.workflow.jobs import Job, JobStore
from plantswap.workflow.models import EditSpec


def collect_images(input_dir: Path) -> Iterable[Path]:
    patterns = ("*.jpg", "*.jpeg", "*.png", "*.webp")
    for pattern in patterns:
        yield from sorted(input_dir.glob(pattern))


def load_edits(raw_edits: Sequence[Dict[str, Any]], plants_dir: Path) -> List[EditSpec]:
    return [EditSpec.from_dict(dict(item), plants_dir=plants_dir) for item in raw_edits]


def build_chain(cfg: AppConfig, output_root: Optional[Path] = None) -> EditChain:
    generator = ReplicateClient(
        models=ReplicateModels.from_config(cfg.generation),
        download_timeout=cfg.generation.download_timeout,
    )
    controller = RetryController(cfg, generator, SimilarityVerifier(cfg.verification))
    reviewer = None
    if cfg.review.enabled:
        reviewer = VisionReviewer(model=cfg.review.openai_model, review_prompt=cfg.prompts.review_prompt)
    return EditChain(cfg, controller, reviewer=reviewer, output_root=output_root)


def run_chain_for_image(
    cfg: AppConfig,
    image_path: Path,
    edits: Sequence[EditSpec],
    *,
    store: Optional[JobStore] = None,
    write_artifacts: bool = True,
) -> Job:
    store = store or JobStore()
    chain = build_chain(cfg, output_root=cfg.project.results_dir if write_artifacts else None)
    job = store.create(edits)
    return chain.run(job, image_path.read_bytes())
