from __future__ import annotations

import argparse
import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv
from omegaconf import OmegaConf
from rich.console import Console
from tqdm import tqdm

from plantswap.config import load_config
from plantswap.utils.logging import configure_logging
from plantswap.utils.paths import ensure_dir
from plantswap.utils.pipeline import collect_images, load_edits, run_chain_for_image
from plantswap.workflow.jobs import Job


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Apply one edit list to every collection image in a directory.")
    parser.add_argument(
        "--edits",
        default="configs/edits/signature_six.yaml",
        help="YAML file with a 'steps' list of edits (default: configs/edits/signature_six.yaml).",
    )
    parser.add_argument(
        "--input-dir",
        type=str,
        default=None,
        help="Override input directory (default: data/uploads/collections).",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Replicate edit model slug (default: openai/gpt-image-1.5).",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Maximum attempts per edit (default: 10).",
    )
    parser.add_argument(
        "--policy",
        choices=("skip", "halt"),
        default=None,
        help="What to do when an edit fails verification (default: skip).",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Skip the network and echo the masked canvas back as the only candidate.",
    )
    parser.add_argument(
        "--csv-path",
        type=str,
        default=None,
        help="Optional output CSV path.",
    )
    return parser.parse_args()


def result_rows(image_path: Path, job: Job) -> list[Dict[str, Any]]:
    rows = []
    for result in job.results:
        winner = result.winner
        rows.append(
            {
                "input_image_path": str(image_path),
                "job_id": job.id,
                "job_status": job.status.value,
                "step": result.step_index + 1,
                "original": result.edit.original,
                "replacement": result.edit.replacement,
                "step_status": result.status.value,
                "attempts": len(result.attempts),
                "winner": winner.label if winner else "",
                "score": f"{winner.score:.4f}" if winner else "",
                "manual": result.manual,
                "output_dir": job.output_dir or "",
                "error": job.error or "",
            }
        )
    if not rows:
        rows.append(
            {
                "input_image_path": str(image_path),
                "job_id": job.id,
                "job_status": job.status.value,
                "error": job.error or "",
            }
        )
    return rows


FIELDNAMES = [
    "input_image_path",
    "job_id",
    "job_status",
    "step",
    "original",
    "replacement",
    "step_status",
    "attempts",
    "winner",
    "score",
    "manual",
    "output_dir",
    "error",
]


def write_csv(rows: list[Dict[str, Any]], csv_path: Path) -> None:
    ensure_dir(csv_path.parent)
    with csv_path.open("w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
        writer.writeheader()
        writer.writerows(rows)


def main() -> None:
    args = parse_args()
    load_dotenv()
    cfg = load_config()
    configure_logging(cfg.logging.level)
    console = Console()

    if args.model:
        cfg.generation.model = args.model
    if args.max_retries:
        cfg.retry.max_retries = args.max_retries
    if args.policy:
        cfg.chain.failure_policy = args.policy
    if args.mock:
        cfg.generation.mock = True

    raw_edits = OmegaConf.to_container(OmegaConf.load(args.edits), resolve=True)
    edits = load_edits(raw_edits["steps"], cfg.project.plants_dir)

    input_dir = Path(args.input_dir) if args.input_dir else cfg.project.collections_dir
    ensure_dir(input_dir)
    images = list(collect_images(input_dir))
    if not images:
        console.print(f"[yellow]No images found in {input_dir}[/yellow]")
        return

    if args.csv_path:
        csv_path = Path(args.csv_path)
    else:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        csv_path = cfg.project.results_dir / f"variants_{timestamp}.csv"

    console.print(
        f"[bold green]Generating variants[/bold green] | images={len(images)} | "
        f"edits={len(edits)} | model={cfg.generation.model} | max_retries={cfg.retry.max_retries}"
    )

    rows: list[Dict[str, Any]] = []
    for image_path in tqdm(images, desc="Processing images"):
        job = run_chain_for_image(cfg, image_path, edits)
        rows.extend(result_rows(image_path, job))

    write_csv(rows, csv_path)
    console.print(f"[green]Wrote CSV:[/green] {csv_path}")


if __name__ == "__main__":
    main()
