"""duet-jobs CLI: submit videos for processing and follow their progress."""

from __future__ import annotations

import argparse
import asyncio
import sys

from duet.config import Settings, settings
from duet.errors.exceptions import DuetError
from duet.events.bus import JobEvent
from duet.logging_config import bind_job_context, clear_job_context, configure_logging
from duet.models.enums import JobEventType
from duet.models.job import Job, JobScope
from duet.runtime import JobRuntime, create_runtime


def _describe(job: Job) -> str:
    parts = [job.id, str(job.status)]
    if job.progress_message:
        parts.append(job.progress_message)
    if job.result_id:
        parts.append(f"result={job.result_id}")
    if job.error_message:
        parts.append(f"error={job.error_message}")
    return "\t".join(parts)


def _scope(group_id: str | None) -> JobScope:
    return JobScope.group(group_id) if group_id is not None else JobScope.personal()


async def _submit(runtime: JobRuntime, args: argparse.Namespace) -> int:
    registry = runtime.registry
    handle = await registry.start_watching(_scope(args.group)) if args.watch else None
    try:
        job = await registry.submit(args.url, args.group)
        bind_job_context(job.id, job.group_id)
        print(f"{job.id}\t{job.status}\t{job.display_url}")
        if handle is None:
            return 0

        finished = asyncio.Event()

        def on_update(event: JobEvent) -> None:
            if event.job.id != job.id:
                return
            print(_describe(event.job))
            if event.job.is_terminal:
                finished.set()

        unsubscribe = registry.events.subscribe(on_update, (JobEventType.UPDATED,))
        try:
            current = registry.get(job.id)
            if current is None or not current.is_terminal:
                await asyncio.wait_for(finished.wait(), timeout=args.timeout)
        except asyncio.TimeoutError:
            print(f"Timed out after {args.timeout:.0f}s waiting for {job.id}", file=sys.stderr)
            return 2
        finally:
            unsubscribe()

        final = registry.get(job.id)
        return 0 if final is not None and final.is_completed else 1
    finally:
        clear_job_context()
        if handle is not None:
            await handle.release()


async def _watch(runtime: JobRuntime, args: argparse.Namespace) -> int:
    registry = runtime.registry
    scope = _scope(args.group)

    def on_update(event: JobEvent) -> None:
        if event.job.group_id == scope.group_id:
            print(_describe(event.job))

    unsubscribe = registry.events.subscribe(on_update, (JobEventType.UPDATED,))
    async with await registry.start_watching(scope):
        try:
            if args.timeout:
                await asyncio.sleep(args.timeout)
            else:
                await asyncio.Event().wait()
        finally:
            unsubscribe()
    return 0


async def _run(config: Settings, args: argparse.Namespace) -> int:
    async with create_runtime(config) as runtime:
        if args.command == "submit":
            return await _submit(runtime, args)
        return await _watch(runtime, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="duet-jobs", description="Submit and follow video processing jobs")
    parser.add_argument("--backend-url", default=None, help=f"Processing API (default: {settings.backend_url})")
    parser.add_argument("--user", default=None, help="User id submitting jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    submit = sub.add_parser("submit", help="Start processing a video URL")
    submit.add_argument("url")
    submit.add_argument("--group", default=None, help="Add to a group's shared list")
    submit.add_argument("--watch", action="store_true", help="Follow the job until it finishes")
    submit.add_argument("--timeout", type=float, default=600.0, help="Seconds to wait with --watch")

    watch = sub.add_parser("watch", help="Print job updates as they arrive")
    watch.add_argument("--group", default=None, help="Watch a group's list instead of your own")
    watch.add_argument("--timeout", type=float, default=0.0, help="Stop after this many seconds (0 = forever)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    overrides = {}
    if args.backend_url:
        overrides["backend_url"] = args.backend_url
    if args.user:
        overrides["user_id"] = args.user
    config = settings.model_copy(update=overrides)
    configure_logging(log_level=config.log_level, json_output=config.json_logs)

    try:
        return asyncio.run(_run(config, args))
    except DuetError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
