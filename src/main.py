# src/main.py — v3
"""CLI entry point — personas, chat and workflow commands.

Usage:
    storyloom personas
    storyloom chat <persona> <message> [--scenario S] [--stream]
    storyloom workflow start <user> <project> <prompt> [--stream]
    storyloom workflow step <workflow_id> <message> [--stream]
    storyloom workflow choose <workflow_id> <phase>
    storyloom workflow info <workflow_id>
    storyloom workflow list <user>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from storyloom.core.errors import StoryloomError
from storyloom.personas.models import Scenario
from storyloom.version import __version__

if TYPE_CHECKING:
    from storyloom.api.facade import Studio
    from storyloom.config.settings import Settings
    from storyloom.streaming.dispatcher import StreamSession
    from storyloom.workflow.models import PhaseResult

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except StoryloomError as exc:
        print(f"Error [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="storyloom",
        description=f"storyloom v{__version__} — persona-driven novel writing assistant",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- personas ---
    p_personas = subparsers.add_parser("personas", help="List available personas")
    p_personas.set_defaults(func=_cmd_personas)

    # --- chat ---
    p_chat = subparsers.add_parser("chat", help="Talk to one persona")
    p_chat.add_argument("persona", help="Persona id (architect, planner, writer, director, ...)")
    p_chat.add_argument("message", help="Message to send")
    p_chat.add_argument(
        "--scenario", default=Scenario.DEFAULT.value,
        choices=[s.value for s in Scenario],
        help="Conversation scenario (default: default)",
    )
    p_chat.add_argument("--project-path", default=None, help="Project path given as context")
    p_chat.add_argument("--stream", action="store_true", help="Print the reply as it is generated")
    p_chat.set_defaults(func=_cmd_chat)

    # --- workflow ---
    p_workflow = subparsers.add_parser("workflow", help="Multi-phase authoring workflows")
    wf_sub = p_workflow.add_subparsers(dest="workflow_command")

    p_start = wf_sub.add_parser("start", help="Create a workflow and run its first phase")
    p_start.add_argument("user", help="User id")
    p_start.add_argument("project", help="Project name")
    p_start.add_argument("prompt", help="Initial story prompt")
    p_start.add_argument("--stream", action="store_true", help="Print the output as it is generated")
    p_start.set_defaults(func=_cmd_workflow_start)

    p_step = wf_sub.add_parser("step", help="Run the current phase once")
    p_step.add_argument("workflow_id")
    p_step.add_argument("message")
    p_step.add_argument("--stream", action="store_true", help="Print the output as it is generated")
    p_step.set_defaults(func=_cmd_workflow_step)

    p_choose = wf_sub.add_parser("choose", help="Choose the phase that follows a review")
    p_choose.add_argument("workflow_id")
    p_choose.add_argument("phase")
    p_choose.set_defaults(func=_cmd_workflow_choose)

    p_info = wf_sub.add_parser("info", help="Show a workflow")
    p_info.add_argument("workflow_id")
    p_info.set_defaults(func=_cmd_workflow_info)

    p_list = wf_sub.add_parser("list", help="List a user's workflows")
    p_list.add_argument("user")
    p_list.set_defaults(func=_cmd_workflow_list)

    return parser


async def _run(args: argparse.Namespace) -> int:
    from storyloom.api.facade import create_studio
    from storyloom.config.settings import load_settings

    settings = load_settings()
    _setup_logging(settings, args.verbose)
    studio = create_studio(settings)
    try:
        return await args.func(studio, args)
    finally:
        await studio.aclose()


async def _cmd_personas(studio: Studio, args: argparse.Namespace) -> int:
    for summary in await studio.conversation.list_personas():
        status = "" if summary.available else "  (prompt unavailable)"
        print(f"{summary.icon} {summary.id:<16} {summary.name}{status}")
    return 0


async def _cmd_chat(studio: Studio, args: argparse.Namespace) -> int:
    from storyloom.conversation.service import build_options
    from storyloom.streaming.dispatcher import ChatSession

    options = build_options(scenario=args.scenario, project_path=args.project_path)
    if args.stream:
        return await _stream(studio, ChatSession(args.persona, args.message, options))

    result = await studio.conversation.converse(args.persona, args.message, options)
    print(result.response_text)
    logger.debug("Token usage: %s", result.usage.model_dump())
    return 0


async def _cmd_workflow_start(studio: Studio, args: argparse.Namespace) -> int:
    on_chunk = _print_chunk if args.stream else None
    started = await studio.orchestrator.start(args.user, args.project, args.prompt, on_chunk)
    if args.stream:
        print()
    print(f"Workflow: {started.workflow_id}")
    _print_phase_result(started.result, show_output=not args.stream)
    return 0


async def _cmd_workflow_step(studio: Studio, args: argparse.Namespace) -> int:
    from storyloom.streaming.dispatcher import WorkflowPhaseSession

    if args.stream:
        return await _stream(studio, WorkflowPhaseSession(args.workflow_id, args.message))

    result = await studio.orchestrator.execute_current_phase(args.workflow_id, args.message)
    _print_phase_result(result)
    return 0


async def _cmd_workflow_choose(studio: Studio, args: argparse.Namespace) -> int:
    workflow = await studio.orchestrator.choose_next_phase(args.workflow_id, args.phase)
    print(f"Status:   {workflow.status.value}")
    print(f"Phase:    {workflow.current_phase.value}")
    print(f"Progress: {workflow.progress.completion_percent}%")
    return 0


async def _cmd_workflow_info(studio: Studio, args: argparse.Namespace) -> int:
    info = await studio.orchestrator.get_workflow_info(args.workflow_id)
    workflow = info.workflow
    print(f"Workflow: {workflow.id} ({workflow.project_name})")
    print(f"  Status:   {workflow.status.value}")
    print(f"  Phase:    {workflow.current_phase.value} — {info.phase.name}")
    print(f"  Progress: {workflow.progress.completion_percent}%"
          f" (quality avg {workflow.progress.quality_average})")
    print(f"  Steps:    {len(workflow.history)}")
    return 0


async def _cmd_workflow_list(studio: Studio, args: argparse.Namespace) -> int:
    summaries = await studio.orchestrator.list_user_workflows(args.user)
    if not summaries:
        print(f"No workflows for {args.user}")
        return 0
    for s in summaries:
        print(
            f"{s.id}  {s.status.value:<9} {s.current_phase.value:<13} "
            f"{s.progress.completion_percent:>3}%  {s.project_name}"
        )
    return 0


async def _print_chunk(delta: str) -> None:
    print(delta, end="", flush=True)


async def _stream(studio: Studio, session: StreamSession) -> int:
    """Dispatch a session to an in-process channel and print it live."""
    from storyloom.streaming.channel import QueueEventChannel
    from storyloom.streaming.events import StreamEventType

    channel = QueueEventChannel()
    dispatch = asyncio.ensure_future(studio.dispatcher.dispatch(session, channel))
    code = 0
    async for event in channel:
        if event.type == StreamEventType.CONTENT_CHUNK:
            print(event.data["content"], end="", flush=True)
        elif event.type == StreamEventType.ERROR:
            print(f"\nError [{event.data['code']}]: {event.data['message']}", file=sys.stderr)
            code = 1
        elif event.is_terminal:
            print()
    await dispatch
    return code


def _print_phase_result(result: PhaseResult, show_output: bool = True) -> None:
    """Print a human-readable summary of a PhaseResult."""
    step = result.step
    action = result.next_action
    status = result.workflow_status
    print(f"\n[{step.phase.value}] quality {step.quality}")
    if show_output:
        print(step.output)
    print(f"\nNext:     {action.action.value} → {status.current_phase.value}")
    if action.reason:
        print(f"Reason:   {action.reason}")
    for choice in action.choices:
        print(f"  - {choice.phase.value}: {choice.name}")
    print(f"Progress: {status.progress.completion_percent}%")
    for suggestion in result.suggestions:
        print(f"  * {suggestion}")


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from storyloom.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format="text",
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
