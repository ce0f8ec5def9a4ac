import time
from pathlib import Path

from dotenv import load_dotenv
from hydra import main
from omegaconf import DictConfig, OmegaConf
from rich.console import Console

from plantswap.config import load_config
from plantswap.utils.logging import configure_logging
from plantswap.utils.pipeline import build_chain, load_edits
from plantswap.workflow.jobs import JobStatus, JobStore


@main(config_path="../configs", config_name="main", version_base=None)
def run(cfg: DictConfig) -> None:
    load_dotenv()
    raw = OmegaConf.to_container(cfg, resolve=True)
    edits_cfg = raw.pop("edits")
    image_name = raw.pop("image")
    poll_interval = float(raw.pop("poll_interval", 1.0))
    app_cfg = load_config(raw)
    configure_logging(app_cfg.logging.level)
    console = Console()

    image_path = Path(image_name)
    if not image_path.is_absolute():
        image_path = app_cfg.project.collections_dir / image_path
    if not image_path.exists():
        console.print(f"[yellow]Collection image not found: {image_path}[/yellow]")
        return

    edits = load_edits(edits_cfg["steps"], app_cfg.project.plants_dir)
    store = JobStore()
    chain = build_chain(app_cfg, output_root=app_cfg.project.results_dir)

    console.print(
        f"[bold green]Launching chain[/bold green] for {image_path.name} | "
        f"edits={len(edits)} | model={app_cfg.generation.model}"
    )
    job = chain.start(store, image_path.read_bytes(), edits)

    seen = 0
    while True:
        logs = list(job.logs)
        for entry in logs[seen:]:
            console.print(f"[blue]{entry.time:%H:%M:%S}[/blue] {entry.msg}")
        seen = len(logs)
        if job.finished and seen == len(job.logs):
            break
        time.sleep(poll_interval)

    colour = "green" if job.status == JobStatus.COMPLETED else "red"
    console.rule(title=f"[{colour}]{job.status.value}[/{colour}]")
    for result in job.results:
        winner = result.winner
        score = f"{winner.score * 100:.1f}%" if winner else "-"
        console.print(
            f"Step {result.step_index + 1}: {result.edit.original} -> {result.edit.replacement} | "
            f"{result.status.value} | version={winner.label if winner else '-'} | score={score}"
        )
    if job.output_dir:
        console.print(f"[green]Results in:[/green] {job.output_dir}")


if __name__ == "__main__":
    run()
