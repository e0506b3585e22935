"""
Command-line interface for promptcascade.

Usage:
    promptcascade run tree.json ROOT_ID [--max-depth 5] [--yes] [--single]
    promptcascade show tree.json [ROOT_ID]
    promptcascade cleanup-traces [--max-age-minutes 30]
"""

import argparse
import asyncio
import json
import sys
from datetime import timedelta
from pathlib import Path

from promptcascade.config import CascadeConfig
from promptcascade.errors import CascadeError
from promptcascade.graph.hitl import AutoConfirmer
from promptcascade.observability import configure_logging
from promptcascade.schemas.action import ActionPreview
from promptcascade.schemas.generation import QuestionInterrupt
from promptcascade.schemas.prompt_node import PromptNode


class ConsoleQuestionAsker:
    """Asks questions on stdin. An empty answer or EOF cancels."""

    async def ask_question(self, interrupt: QuestionInterrupt) -> str | None:
        print(f"\n? {interrupt.question}")
        if interrupt.description:
            print(f"  ({interrupt.description})")
        try:
            answer = await asyncio.to_thread(input, f"  {interrupt.variable_name}> ")
        except EOFError:
            return None
        return answer.strip() or None


class ConsoleConfirmer:
    """Shows an action preview and asks for y/N on stdin."""

    async def confirm(self, preview: ActionPreview) -> bool:
        print(f"\nAction {preview.action} on '{preview.node_name}': {preview.item_count} item(s)")
        for index, item in enumerate(preview.items[:10]):
            text = item if isinstance(item, str) else json.dumps(item, ensure_ascii=False)
            print(f"  {index + 1}. {text[:100]}")
        if preview.item_count > 10:
            print(f"  ... and {preview.item_count - 10} more")
        try:
            answer = await asyncio.to_thread(input, "Apply? [y/N] ")
        except EOFError:
            return False
        return answer.strip().lower() in ("y", "yes")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_run(args: argparse.Namespace) -> int:
    from promptcascade.graph.walker import CascadeWalker
    from promptcascade.llm.litellm import LiteLLMGenerationProvider
    from promptcascade.runtime.telemetry import RunTelemetry
    from promptcascade.runtime.trace_log_store import TraceLogStore
    from promptcascade.storage.file_tree_store import FileTreeStore

    config = CascadeConfig()
    if args.model:
        config.model = args.model

    store = FileTreeStore(Path(args.tree))
    trace_store = TraceLogStore(config.storage_path)
    walker = CascadeWalker(
        store,
        LiteLLMGenerationProvider(api_key=config.api_key, api_base=config.api_base),
        telemetry=RunTelemetry(recorder=trace_store, ledger=trace_store),
        question_asker=ConsoleQuestionAsker(),
        confirmer=AutoConfirmer() if args.yes else ConsoleConfirmer(),
        config=config,
    )

    run = walker.run_single if args.single else walker.run_cascade
    try:
        result = asyncio.run(run(args.root_id, max_depth=args.max_depth))
    except CascadeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"\nStatus: {result.status}")
    for outcome in result.results:
        mark = "ok" if outcome.success else "FAILED"
        extra = f" (+{outcome.created_count} children)" if outcome.created_count else ""
        error = f": {outcome.error}" if outcome.error else ""
        label = outcome.node_name or outcome.node_id
        print(f"  {'  ' * outcome.depth}[{mark}] {label}{extra}{error}")
    for skipped in result.skipped:
        print(f"  [skipped:{skipped.reason}] {skipped.node_name or skipped.node_id}")
    if result.trace_id:
        print(f"Trace: {result.trace_id}")
    return 0 if result.success else 1


def cmd_show(args: argparse.Namespace) -> int:
    from promptcascade.storage.file_tree_store import FileTreeStore

    store = FileTreeStore(Path(args.tree))

    async def _load() -> list[PromptNode]:
        if args.root_id:
            root = await store.get_subtree(args.root_id)
            return [root] if root is not None else []
        roots = await store.list_children(None)
        return [tree for tree in [await store.get_subtree(r.id) for r in roots] if tree]

    trees = asyncio.run(_load())
    if not trees:
        print("No prompts found", file=sys.stderr)
        return 1
    for tree in trees:
        _print_tree(tree, 0)
    return 0


def _print_tree(node: PromptNode, depth: int) -> None:
    flags = [node.node_type.value]
    if node.post_action:
        flags.append(node.post_action)
    if node.auto_run_children:
        flags.append("auto-run")
    if node.exclude_from_cascade:
        flags.append("excluded")
    print(f"{'  ' * depth}- {node.name or node.id} [{node.id}] ({', '.join(flags)})")
    for child in node.children:
        _print_tree(child, depth + 1)


def cmd_cleanup_traces(args: argparse.Namespace) -> int:
    from promptcascade.runtime.trace_log_store import TraceLogStore

    trace_store = TraceLogStore(CascadeConfig().storage_path)
    cleaned = asyncio.run(
        trace_store.cleanup_orphaned_traces(timedelta(minutes=args.max_age_minutes))
    )
    print(f"Marked {cleaned} orphaned trace(s) as failed")
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    run_parser = subparsers.add_parser("run", help="Run a cascade (or a single node)")
    run_parser.add_argument("tree", help="Path to the prompt tree JSON file")
    run_parser.add_argument("root_id", help="Node to start from")
    run_parser.add_argument("--max-depth", type=int, default=None, help="Auto-spawn depth limit")
    run_parser.add_argument("--model", default=None, help="Default model (provider/model)")
    run_parser.add_argument("--yes", action="store_true", help="Apply actions without preview")
    run_parser.add_argument(
        "--single", action="store_true", help="Run only this node (and its auto-run children)"
    )
    run_parser.set_defaults(func=cmd_run)

    show_parser = subparsers.add_parser("show", help="Print a prompt tree")
    show_parser.add_argument("tree", help="Path to the prompt tree JSON file")
    show_parser.add_argument("root_id", nargs="?", default=None, help="Subtree to print")
    show_parser.set_defaults(func=cmd_show)

    cleanup_parser = subparsers.add_parser(
        "cleanup-traces", help="Mark traces left running by crashed runs as failed"
    )
    cleanup_parser.add_argument("--max-age-minutes", type=int, default=30)
    cleanup_parser.set_defaults(func=cmd_cleanup_traces)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="promptcascade",
        description="Run cascades over trees of LLM prompts",
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level")
    parser.add_argument(
        "--log-format", default="auto", choices=["auto", "json", "human"], help="Log format"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
