from __future__ import annotations

import json
import logging
from pathlib import Path

from plantswap.imaging.encoding import open_image
from plantswap.utils.paths import ensure_dir, slugify

logger = logging.getLogger(__name__)


class ArtifactWriter:
    """Writes a job's original, masks, candidates and final image under ``root/<job id>/``."""

    def __init__(self, root: Path, job_id: str) -> None:
        self.output_dir = ensure_dir(Path(root) / job_id)

    def write_original(self, data: bytes) -> Path:
        path = self.output_dir / "ORIGINAL.jpg"
        open_image(data).convert("RGB").save(path, format="JPEG", quality=95)
        return path

    def write_step(self, result) -> None:
        step = result.step_index + 1
        replacement = slugify(result.edit.replacement)
        for record in result.attempts:
            if record.canvas:
                (self.output_dir / f"step{step}-attempt{record.index}-mask.png").write_bytes(record.canvas)
            for candidate in record.candidates:
                path = self.output_dir / f"step{step}-v{candidate.label}-{replacement}.png"
                path.write_bytes(candidate.image)
        logger.debug("Wrote step %s artifacts to %s", step, self.output_dir)

    def write_final(self, data: bytes) -> Path:
        path = self.output_dir / "FINAL.jpg"
        open_image(data).convert("RGB").save(path, format="JPEG", quality=95)
        return path

    def write_summary(self, snapshot: dict) -> Path:
        path = self.output_dir / "summary.json"
        with path.open("w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2)
        return path
