"""Console entry point for AMW."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from dotenv import load_dotenv

from amw.src.browser.playwright_surface import PlaywrightSurface
from amw.src.errors import AmwError, AutomationSurfaceError
from amw.src.memory import HybridRetriever, MemoryOrchestrator, MemoryStore, RunRequest
from amw.src.runtime import RunLogger, TrajectoryExecutor
from amw.src.trajectory import build_trajectory, load_steps, validate_steps_file
from amw.src.utils import AmwConfig, domain_from_site_or_url, load_config, parse_bool, short_id

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_FAILED = 2


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _json_object(raw: str, label: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{label} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{label} must be a JSON object")
    return data


def parse_runtime_vars(args: argparse.Namespace) -> dict[str, Any]:
    """``--vars-file`` then ``--vars-json`` then ``--query``; later sources win."""
    values: dict[str, Any] = {}
    if getattr(args, "vars_file", None):
        text = Path(args.vars_file).read_text(encoding="utf-8-sig")
        values.update(_json_object(text, "--vars-file"))
    if getattr(args, "vars_json", None):
        values.update(_json_object(args.vars_json, "--vars-json"))
    if getattr(args, "query", None) is not None:
        values["query"] = str(args.query)
    return values


def _pick(cli_value: Any, config_value: Any) -> Any:
    return config_value if cli_value is None else cli_value


def _store(args: argparse.Namespace, config: AmwConfig) -> tuple[MemoryStore, Path]:
    store_dir = Path(_pick(args.store_dir, config.store_dir))
    return MemoryStore(store_dir / "memory.db"), store_dir


def _run_request(args: argparse.Namespace, config: AmwConfig, site: str, task_type: str, intent: str) -> RunRequest:
    return RunRequest(
        site=site,
        task_type=task_type,
        intent=intent,
        vars=parse_runtime_vars(args),
        disable_replay=bool(_pick(getattr(args, "disable_replay", None), config.disable_replay)),
        hold_open_ms=int(_pick(args.hold_open_ms, config.hold_open_ms)),
        session=_pick(args.session, config.session),
        profile=_pick(args.profile, config.profile),
        profile_dir=_pick(args.profile_dir, config.profile_dir),
        headed=bool(_pick(args.headed, config.headed)),
        browser=_pick(args.browser, config.browser),
    )


def cmd_list(args: argparse.Namespace, config: AmwConfig) -> int:
    store, _ = _store(args, config)
    trajectories = store.list_trajectories(site=args.site, task_type=args.task_type, limit=args.limit)
    if not trajectories:
        print("No trajectories found.")
        return EXIT_OK
    for traj in trajectories:
        stats = store.get_stats(traj.trajectory_id)
        print(
            f"{traj.trajectory_id} | site={traj.site} task_type={traj.task_type} "
            f"v{traj.version} steps={len(traj.steps)} "
            f"success_rate={stats.success_rate:.2f} usage={stats.usage_count}"
        )
    print(f"{len(trajectories)} of {store.count()} trajectories")
    return EXIT_OK


def cmd_search(args: argparse.Namespace, config: AmwConfig) -> int:
    store, _ = _store(args, config)
    hits = HybridRetriever(store).search(args.site, args.task_type, args.intent, top_k=args.top_k)
    if not hits:
        print("No retrieval hits.")
        return EXIT_OK
    for index, hit in enumerate(hits, start=1):
        detail = {k: round(v, 4) for k, v in hit.breakdown.to_dict().items()}
        print(f"{index}. {hit.trajectory.trajectory_id} score={hit.score:.4f} detail={json.dumps(detail)}")
    return EXIT_OK


async def _record(args: argparse.Namespace, config: AmwConfig) -> int:
    store, store_dir = _store(args, config)
    steps = load_steps(args.steps_file)
    site = domain_from_site_or_url(args.site)
    trajectory = build_trajectory(
        trajectory_id=args.trajectory_id or f"{site}_{args.task_type}_{short_id()}",
        site=site,
        task_type=args.task_type,
        intent=args.intent,
        steps=steps,
        metadata={"source": "manual_record"},
    )
    request = _run_request(args, config, site, args.task_type, args.intent)
    logger = RunLogger(store_dir)
    surface = PlaywrightSurface.from_request(request)
    try:
        executor = TrajectoryExecutor(
            surface,
            logger,
            initial_vars=request.vars,
            context={"site": site, "task_type": args.task_type, "intent": args.intent},
        )
        result = await executor.replay(trajectory)
        if result.success:
            store.save_trajectory(trajectory)
            store.record_result(trajectory.trajectory_id, True, result.latency_ms)
            summary = logger.summarize(
                "success",
                mode="record",
                trajectory_id=trajectory.trajectory_id,
                executed_steps=result.executed_steps,
            )
            print(f"Recorded trajectory: {trajectory.trajectory_id}")
            _print_json(summary)
            return EXIT_OK
        store.record_result(trajectory.trajectory_id, False, result.latency_ms)
        summary = logger.summarize("failed", mode="record", reason=result.reason)
        print(f"Record failed: {result.reason}", file=sys.stderr)
        _print_json(summary)
        return EXIT_FAILED
    finally:
        if request.hold_open_ms > 0:
            print(f"Holding browser open for {request.hold_open_ms} ms...")
            await asyncio.sleep(request.hold_open_ms / 1000.0)
        try:
            await surface.close()
        except AutomationSurfaceError as exc:
            print(f"[WARN] Failed to close browser: {exc}", file=sys.stderr)


def cmd_record(args: argparse.Namespace, config: AmwConfig) -> int:
    return asyncio.run(_record(args, config))


def cmd_validate(args: argparse.Namespace, config: AmwConfig) -> int:
    steps_file, report = validate_steps_file(args.steps_file)
    _print_json(
        {
            "ok": report.ok,
            "file": str(steps_file.path),
            "step_count": report.step_count,
            "errors": report.errors,
            "warnings": report.warnings,
        }
    )
    return EXIT_OK if report.ok else EXIT_FAILED


def cmd_run(args: argparse.Namespace, config: AmwConfig) -> int:
    store, store_dir = _store(args, config)
    fallback_steps = load_steps(args.fallback_steps_file) if args.fallback_steps_file else None
    request = _run_request(args, config, args.site, args.task_type, args.intent)
    orchestrator = MemoryOrchestrator(store, store_dir)
    outcome = asyncio.run(orchestrator.run(request, fallback_steps))
    _print_json(
        {
            "success": outcome.success,
            "mode": outcome.mode,
            "reason": outcome.result.reason,
            "selected_trajectory_id": outcome.selected_trajectory_id,
            "summary": outcome.summary,
        }
    )
    return EXIT_OK if outcome.success else EXIT_FAILED


def _add_store_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--store-dir", default=None, help="Store directory (default: ./data)")


def _add_request_options(parser: argparse.ArgumentParser, *, required: bool = True) -> None:
    parser.add_argument("--site", required=required)
    parser.add_argument("--task-type", required=required)
    parser.add_argument("--intent", required=required)


def _add_browser_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--session", default=None)
    parser.add_argument("--profile", default=None, help="Browser identity profile (default: main)")
    parser.add_argument("--profile-dir", default=None, help="Profile root dir (default: ./profiles)")
    parser.add_argument("--browser", default=None, choices=("chromium", "firefox", "webkit"))
    parser.add_argument("--headed", type=parse_bool, nargs="?", const=True, default=None)
    parser.add_argument("--hold-open-ms", type=int, default=None, help="Keep browser open for N ms before close")
    parser.add_argument("--query", default=None, help="Shortcut for vars.query")
    parser.add_argument("--vars-file", default=None, help="JSON object for runtime variables")
    parser.add_argument("--vars-json", default=None, help="Inline JSON object for runtime variables")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="amw", description="Agent memory workbench")
    subparsers = parser.add_subparsers(dest="command")

    list_parser = subparsers.add_parser("list", help="List stored trajectories")
    _add_store_option(list_parser)
    list_parser.add_argument("--site", default=None)
    list_parser.add_argument("--task-type", default=None)
    list_parser.add_argument("--limit", type=int, default=50)
    list_parser.set_defaults(handler=cmd_list)

    search = subparsers.add_parser("search", help="Search trajectory memory")
    _add_store_option(search)
    _add_request_options(search)
    search.add_argument("--top-k", type=int, default=3)
    search.set_defaults(handler=cmd_search)

    record = subparsers.add_parser("record", help="Execute steps and save the trajectory on success")
    _add_store_option(record)
    _add_request_options(record)
    _add_browser_options(record)
    record.add_argument("--steps-file", required=True)
    record.add_argument("--trajectory-id", default=None)
    record.set_defaults(handler=cmd_record)

    validate = subparsers.add_parser("validate", help="Validate a trajectory or steps file")
    validate.add_argument("--steps-file", "--fallback-steps-file", dest="steps_file", required=True)
    validate.set_defaults(handler=cmd_validate)

    run = subparsers.add_parser("run", help="Replay-first run with optional fallback exploration")
    _add_store_option(run)
    _add_request_options(run)
    _add_browser_options(run)
    run.add_argument("--fallback-steps-file", default=None)
    run.add_argument("--disable-replay", type=parse_bool, nargs="?", const=True, default=None)
    run.set_defaults(handler=cmd_run)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(Path.cwd() / ".env")
    parser = build_parser()
    args = parser.parse_args(list(sys.argv[1:] if argv is None else argv))
    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return EXIT_USAGE
    try:
        return handler(args, load_config())
    except (AmwError, ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
