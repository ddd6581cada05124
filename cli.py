#!/usr/bin/env python3
import argparse
import json

from newsdesk.orchestrator import run_once


def main():
    parser = argparse.ArgumentParser(description="newsdesk CLI")
    parser.add_argument("--config", required=True, help="Path to YAML config")
    parser.add_argument("--window-hours", dest="window_hours", type=float, help="Active cluster window in hours")
    parser.add_argument("--similarity-threshold", dest="similarity_threshold", type=float, help="Minimum blended title similarity (0-1)")
    parser.add_argument("--min-source-count", dest="min_source_count", type=int, help="Distinct sources required before enrichment")
    parser.add_argument("--parallel", dest="parallel", action="store_true", help="Run enrichment stages through the worker pool")
    parser.add_argument("--sequential", dest="parallel", action="store_false", help="Run enrichment stages in order per cluster")
    parser.add_argument("--workers", dest="workers", type=int, help="Worker pool size for parallel mode")
    parser.add_argument("--force", action="store_true", help="Ignore the minimum interval between runs")
    parser.add_argument("--enrich-only", dest="enrich_only", action="store_true", help="Skip fetching; backfill recent clusters")
    parser.set_defaults(parallel=None)
    args = parser.parse_args()

    overrides = {
        "window_hours": args.window_hours,
        "similarity_threshold": args.similarity_threshold,
        "min_source_count": args.min_source_count,
        "parallel": args.parallel,
        "workers": args.workers,
    }

    stats = run_once(args.config, force=args.force, enrich_only=args.enrich_only, overrides=overrides)
    print(json.dumps(stats.model_dump(mode="json"), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
