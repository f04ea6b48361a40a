from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, Optional

from pipelines.bottlenecks import BottleneckSnapshot
from pipelines.retry import RetryResult
from pipelines.runner import RunContext


def _llm_usage_for_run(run_id: str) -> Dict[str, Dict[str, int]]:
    """Aggregate oracle usage from the call trace for the given run_id.

    Returns dict like { 'openai': {'calls': N, 'tokens': T}, 'unipile': {...} }
    """
    result: Dict[str, Dict[str, int]] = {}
    from config.settings import get_settings
    settings = get_settings()
    log_path = Path(settings.llm_log_path)
    if not log_path.exists():
        return result
    try:
        with log_path.open("r", encoding="utf-8") as f:
            for line in f:
                try:
                    rec = json.loads(line)
                except ValueError:
                    continue
                if not isinstance(rec, dict) or rec.get("run_id") != run_id:
                    continue
                provider = rec.get("provider") or "unknown"
                usage = rec.get("usage") or {}
                bucket = result.setdefault(provider, {"calls": 0, "tokens": 0})
                bucket["calls"] += 1
                try:
                    bucket["tokens"] += int(usage.get("total_tokens") or 0)
                except (TypeError, ValueError):
                    pass
    except OSError:
        return result
    return result


def _print_usage(run_id: Optional[str]) -> None:
    from config.settings import get_settings
    if not run_id or not get_settings().llm_trace:
        return
    usage = _llm_usage_for_run(run_id)
    if usage:
        print("Oracle Usage:")
        for provider, stats in usage.items():
            print(f"  {provider}: calls={stats.get('calls', 0)}, tokens={stats.get('tokens', 0)}")


def print_run_summary(ctx: RunContext) -> None:
    """Print per-stage outcome of a chain or stage run."""
    print("\n" + "=" * 60)
    print(f"PIPELINE RUN - {ctx.meta.get('action', 'run')}")
    print("=" * 60)
    print(f"Dataset: {ctx.dataset_id or 'all'}")
    print(f"Run ID: {ctx.meta.get('run_id', 'N/A')}")
    print()
    if not ctx.results:
        print("Nothing to do")
    for r in ctx.results:
        if r.skipped:
            print(f"  {r.stage:<14} skipped")
            continue
        line = (
            f"  {r.stage:<14} batch={r.batch_size} processed={r.processed} advanced={r.advanced} "
            f"rejected={r.rejected} failed={r.failed}"
        )
        if r.lost:
            line += f" lost={r.lost}"
        if r.next_triggered:
            line += " -> next"
        if r.error:
            line += f" ERROR: {r.error}"
        print(line)
        for key, value in r.details.items():
            print(f"      {key}: {value}")
    failed = ctx.failed_stages
    if failed:
        print()
        print(f"Failed stages: {', '.join(failed)}")
    _print_usage(ctx.meta.get("run_id") or os.getenv("RUN_ID"))
    print("=" * 60)


def print_status(status: dict) -> None:
    print(json.dumps(status, indent=2, ensure_ascii=False))


def print_snapshot(snapshot: BottleneckSnapshot) -> None:
    print("\n" + "=" * 60)
    print("PIPELINE BOTTLENECKS")
    print("=" * 60)
    print(f"Dataset: {snapshot.dataset_id or 'all'}")
    print(f"Raw posts pending: {snapshot.raw_unprocessed}")
    print("Per stage (queued / processing / error / rejected):")
    for stage, queued in snapshot.queued.items():
        rejected = snapshot.rejected.get(stage, "-")
        print(
            f"  {stage:<14} {queued:>6} / {snapshot.processing.get(stage, 0):>6} / "
            f"{snapshot.errored.get(stage, 0):>6} / {rejected:>6}"
        )
    print(f"Completed posts: {snapshot.completed}")
    print(f"Leads: {snapshot.leads}")
    print(f"Stuck in processing: {snapshot.stuck}")
    print()
    if snapshot.recommendations:
        print("Recommendations:")
        for rec in snapshot.recommendations:
            print(f"  - {rec}")
    else:
        print("No bottleneck detected")
    print("=" * 60)


def print_retry(result: RetryResult, label: str = "Retry") -> None:
    parts = [f"reset={result.reset}"]
    if result.skipped_max_retries:
        parts.append(f"skipped_max_retries={result.skipped_max_retries}")
    if result.not_due:
        parts.append(f"not_due={result.not_due}")
    if result.lost:
        parts.append(f"lost={result.lost}")
    print(f"{label}: {', '.join(parts)}")
