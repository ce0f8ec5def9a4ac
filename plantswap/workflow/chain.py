from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Sequence

from openai import OpenAIError

from plantswap.imaging.encoding import open_image, prepare_next_input
from plantswap.utils.artifacts import ArtifactWriter
from plantswap.workflow.jobs import Job, JobStatus, JobStore
from plantswap.workflow.models import EditSpec, StepResult, StepStatus

logger = logging.getLogger(__name__)

FAILURE_POLICIES = ("skip", "halt")


class EditChain:
    """
    Applies the retry controller to each edit in order. A verified step's output
    (re-encoded for upload) becomes the next step's input.
    """

    def __init__(self, cfg, controller, reviewer=None, output_root: Optional[Path] = None) -> None:
        if cfg.chain.failure_policy not in FAILURE_POLICIES:
            raise ValueError(f"Unknown failure policy: {cfg.chain.failure_policy}")
        self.cfg = cfg
        self.controller = controller
        self.reviewer = reviewer
        self.output_root = output_root

    def start(self, store: JobStore, source_image: bytes, edits: Sequence[EditSpec]) -> Job:
        job = store.create(edits)
        worker = threading.Thread(
            target=self.run,
            args=(job, source_image),
            name=f"chain-{job.id}",
            daemon=True,
        )
        worker.start()
        return job

    def prepare(self, data: bytes) -> bytes:
        return prepare_next_input(
            data,
            max_width=self.cfg.chain.max_input_width,
            quality=self.cfg.chain.jpeg_quality,
        )

    def run(self, job: Job, source_image: bytes) -> Job:
        try:
            self._run(job, source_image)
        except Exception as err:
            logger.exception("Job %s failed", job.id)
            job.log(f"Error: {err}")
            job.finish(JobStatus.ERROR, error=str(err))
        return job

    def _run(self, job: Job, source_image: bytes) -> None:
        open_image(source_image)
        for edit in job.edits:
            edit.validate()

        writer = None
        if self.output_root is not None:
            writer = ArtifactWriter(self.output_root, job.id)
            job.output_dir = str(writer.output_dir)
            writer.write_original(source_image)

        working = source_image
        total = job.total_steps
        job.log("Starting plant replacement...")
        job.log(f"{total} plants to replace (max {self.cfg.retry.max_retries} retries each)")

        for index, edit in enumerate(job.edits):
            if job.cancelled:
                job.log("Job stopped")
                job.final_image = working
                job.finish(JobStatus.CANCELLED)
                return

            job.begin_step(index)
            job.log(f"Step {index + 1}/{total}: {edit.original or 'plant'} -> {edit.replacement}")
            result = self.controller.run(job, index, edit, working)

            if result.succeeded:
                self._review(job, result, working)
                working = self.prepare(result.image)
                job.log(f"Step {index + 1} completed after {len(result.attempts)} attempt(s)")
            elif result.status == StepStatus.CANCELLED:
                job.log(f"Step {index + 1} cancelled")
            else:
                job.log(f"Step {index + 1} FAILED after {len(result.attempts)} attempts - keeping previous image")
            job.end_step(result)
            if writer is not None:
                writer.write_step(result)

            if result.status == StepStatus.CANCELLED:
                job.final_image = working
                job.finish(JobStatus.CANCELLED)
                return
            if result.status == StepStatus.FAILED and self.cfg.chain.failure_policy == "halt":
                job.log("Halting chain after failed step")
                break
            if index + 1 < total:
                job.sleep(self.cfg.chain.step_delay)

        job.final_image = working
        if writer is not None:
            writer.write_final(working)
        succeeded = sum(1 for r in job.results if r.succeeded)
        job.log(f"{succeeded}/{total} edits passed verification")
        job.finish(JobStatus.COMPLETED)
        if writer is not None:
            writer.write_summary(job.snapshot())

    def _review(self, job: Job, result: StepResult, before: bytes) -> None:
        if self.reviewer is None:
            return
        try:
            review = self.reviewer.review_edit(before, result.image, result.edit)
        except (OpenAIError, ValueError):
            logger.warning("Vision review failed for step %s", result.step_index + 1, exc_info=True)
            return
        result.review = review.to_dict()
        job.log(f"Review: replaced={review.replaced} preserved={review.preserved} | {review.notes}")
