import io
import time
from types import SimpleNamespace

import httpx
import pytest
from openai import OpenAIError

from plantswap.imaging.encoding import image_size
from plantswap.imaging.regions import RegionDescriptor
from plantswap.integrations.openai_client import ReviewResult, VisionReviewer
from plantswap.integrations.replicate_client import ReplicateClient, ReplicateModels
from plantswap.workflow.chain import EditChain
from plantswap.workflow.controller import RetryController
from plantswap.workflow.jobs import JobStatus
from plantswap.workflow.models import EditSpec, StepStatus

from conftest import FakeGenerator, ScriptedVerifier, png_bytes

A, B, C, D = (png_bytes((i * 40, 200, 10), size=(120, 90)) for i in range(1, 5))


def make_edits(count):
    return [
        EditSpec(
            original=f"plant {i}",
            replacement=f"replacement {i}",
            region=RegionDescriptor.ellipse(0.2 + 0.15 * i, 0.6, 0.05, 0.08),
        )
        for i in range(count)
    ]


def make_chain(cfg, generator, verifier, **kwargs):
    return EditChain(cfg, RetryController(cfg, generator, verifier), **kwargs)


def test_verified_output_feeds_next_step(cfg, store, source_image):
    verifier = ScriptedVerifier([0.97, 0.98])
    chain = make_chain(cfg, FakeGenerator([[A], [B]]), verifier)
    job = store.create(make_edits(2))

    chain.run(job, source_image)

    assert job.status == JobStatus.COMPLETED
    assert job.progress == 100
    assert verifier.calls[0]["input_image"] == source_image
    assert verifier.calls[1]["input_image"] == chain.prepare(A)
    assert job.final_image == chain.prepare(B)
    assert [r.status for r in job.results] == [StepStatus.SUCCEEDED, StepStatus.SUCCEEDED]
    assert job.logs[-1].msg == "2/2 edits passed verification"


def test_prepare_is_deterministic_and_bounded(cfg, store):
    cfg.chain.max_input_width = 50
    chain = make_chain(cfg, FakeGenerator([]), ScriptedVerifier([]))
    first = chain.prepare(A)

    assert first == chain.prepare(A)
    assert first[:3] == b"\xff\xd8\xff"
    assert image_size(first) == (50, 38)


def test_failed_step_is_skipped(cfg, store, source_image):
    verifier = ScriptedVerifier([0.1, 0.1, 0.1, 0.99])
    generator = FakeGenerator([[A], [B], [C], [D]])
    job = store.create(make_edits(2))

    make_chain(cfg, generator, verifier).run(job, source_image)

    assert job.status == JobStatus.COMPLETED
    assert [r.status for r in job.results] == [StepStatus.FAILED, StepStatus.SUCCEEDED]
    assert len(job.results[0].attempts) == 3
    assert verifier.calls[3]["input_image"] == source_image
    assert job.logs[-1].msg == "1/2 edits passed verification"


def test_halt_policy_stops_after_failure(cfg, store, source_image):
    cfg.chain.failure_policy = "halt"
    generator = FakeGenerator([[A], [B], [C], [D]])
    job = store.create(make_edits(2))

    make_chain(cfg, generator, ScriptedVerifier([0.1] * 4)).run(job, source_image)

    assert job.status == JobStatus.COMPLETED
    assert len(job.results) == 1
    assert len(generator.calls) == 3
    assert job.final_image == source_image


def test_unknown_failure_policy_rejected(cfg):
    cfg.chain.failure_policy = "retry-forever"
    with pytest.raises(ValueError):
        make_chain(cfg, FakeGenerator([]), ScriptedVerifier([]))


def test_cancel_between_steps(cfg, store, source_image):
    job = store.create(make_edits(4))

    def cancel_on_second(call_number):
        if call_number == 2:
            job.cancel()

    generator = FakeGenerator([[A], [B], [C], [D]])
    verifier = ScriptedVerifier([0.99] * 4, on_score=cancel_on_second)
    make_chain(cfg, generator, verifier).run(job, source_image)

    assert job.status == JobStatus.CANCELLED
    assert len(job.results) == 2
    assert len(generator.calls) == 2
    assert all(r.step_index < 2 for r in job.results)


def test_undecodable_source_sets_error(cfg, store):
    job = store.create(make_edits(1))
    make_chain(cfg, FakeGenerator([[A]]), ScriptedVerifier([0.99])).run(job, b"not an image")

    assert job.status == JobStatus.ERROR
    assert job.error
    assert job.results == []


def test_malformed_edit_sets_error(cfg, store, source_image):
    bad = EditSpec(original="a", replacement="b", region=RegionDescriptor.ellipse(0.5, 0.5, 0.0, 0.1))
    generator = FakeGenerator([[A]])
    job = store.create([bad])

    make_chain(cfg, generator, ScriptedVerifier([0.99])).run(job, source_image)

    assert job.status == JobStatus.ERROR
    assert "radii" in job.error
    assert generator.calls == []


def test_start_runs_in_background(cfg, store, source_image):
    chain = make_chain(cfg, FakeGenerator([[A]]), ScriptedVerifier([0.99]))
    job = chain.start(store, source_image, make_edits(1))

    assert store.get(job.id) is job
    deadline = time.monotonic() + 10
    while not job.finished and time.monotonic() < deadline:
        time.sleep(0.01)
    assert job.status == JobStatus.COMPLETED


def test_artifacts_written(cfg, store, source_image, tmp_path):
    chain = make_chain(cfg, FakeGenerator([[A, B]]), ScriptedVerifier([0.99, 0.5]), output_root=tmp_path / "results")
    job = store.create(make_edits(1))

    chain.run(job, source_image)

    out = tmp_path / "results" / job.id
    assert job.output_dir == str(out)
    names = {p.name for p in out.iterdir()}
    assert {"ORIGINAL.jpg", "FINAL.jpg", "summary.json", "step1-attempt1-mask.png"} <= names
    assert "step1-v1A-replacement-0.png" in names
    assert "step1-v1B-replacement-0.png" in names


class FakeReviewer:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def review_edit(self, before, after, edit):
        self.calls += 1
        if self.error:
            raise self.error
        return ReviewResult(replaced=True, preserved=True, notes="pot unchanged")


def test_review_attached_to_step(cfg, store, source_image):
    reviewer = FakeReviewer()
    job = store.create(make_edits(1))
    make_chain(cfg, FakeGenerator([[A]]), ScriptedVerifier([0.99]), reviewer=reviewer).run(job, source_image)

    assert job.results[0].review == {"replaced": True, "preserved": True, "notes": "pot unchanged"}


def test_review_failure_does_not_fail_step(cfg, store, source_image):
    reviewer = FakeReviewer(error=OpenAIError("rate limited"))
    job = store.create(make_edits(1))
    make_chain(cfg, FakeGenerator([[A]]), ScriptedVerifier([0.99]), reviewer=reviewer).run(job, source_image)

    assert reviewer.calls == 1
    assert job.results[0].succeeded
    assert job.results[0].review is None
    assert job.status == JobStatus.COMPLETED


def test_malformed_review_does_not_fail_step(cfg, store, source_image, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    reviewer = VisionReviewer(model="gpt-5.2", review_prompt=cfg.prompts.review_prompt)
    message = SimpleNamespace(content="Sure! Looks good.")
    completions = SimpleNamespace(create=lambda **kwargs: SimpleNamespace(choices=[SimpleNamespace(message=message)]))
    reviewer.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    job = store.create(make_edits(1))

    make_chain(cfg, FakeGenerator([[A]]), ScriptedVerifier([0.99]), reviewer=reviewer).run(job, source_image)

    assert job.status == JobStatus.COMPLETED
    assert job.results[0].succeeded
    assert job.results[0].review is None


def test_network_failure_is_a_failed_attempt(cfg, store, source_image, monkeypatch):
    monkeypatch.setenv("REPLICATE_API_TOKEN", "test-token")
    client = ReplicateClient(models=ReplicateModels(edit_model="openai/gpt-image-1.5"))
    outcomes = [httpx.ConnectError("connection refused"), [io.BytesIO(A)]]

    def run(model, input):
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    client.client = SimpleNamespace(run=run)
    job = store.create(make_edits(1))

    make_chain(cfg, client, ScriptedVerifier([0.99])).run(job, source_image)

    assert job.status == JobStatus.COMPLETED
    (result,) = job.results
    assert result.succeeded
    first, second = result.attempts
    assert "connection refused" in first.error
    assert first.candidates == []
    assert second.candidates[0].label == "2A"
    assert second.region.ry < first.region.ry
