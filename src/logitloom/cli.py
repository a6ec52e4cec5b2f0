from __future__ import annotations

import argparse
import asyncio
import json
import os
import signal
import sys

from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.tree import Tree

from .api_sniffer import sniff_api
from .logger import logger, set_level
from .nodes import Token
from .store import RunRequest, RunState, SerializedTree, TreeStore, load_tree, save_tree


def _count_nodes(roots: list[Token]) -> int:
    return sum(1 + _count_nodes(r.children) for r in roots)


def render_tree(roots: list[Token], *, title: str = "roots", show_ids: bool = False) -> Tree:
    tree = Tree(escape(title))

    def add(parent: Tree, node: Token):
        label = f"{escape(repr(node.text))} [dim]({node.prob:.4f})[/dim]"
        if node.branch_finished is not None:
            label += f" [red]<{node.branch_finished.value}>[/red]"
        if show_ids:
            label += f" [dim]{node.id}[/dim]"
        branch = parent.add(label)
        for child in node.children:
            add(branch, child)

    for root in roots:
        add(tree, root)
    return tree


def _settings(args) -> dict:
    settings = {"kind": args.model_type}
    if args.model_type == "chat" and args.system_prompt:
        settings["systemPrompt"] = args.system_prompt
    if args.prompt:
        settings["prompt"] = args.prompt
    if args.prefill:
        settings["prefill"] = args.prefill
    return settings


def _request(args, console: Console, *, from_node_id: str | None = None) -> RunRequest:
    base_url = args.base_url or os.getenv("OPENAI_BASE_URL") or "https://api.openai.com/v1"
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        logger.error("OPENAI_API_KEY must be set to query a backend")
        console.print("[red]OPENAI_API_KEY is not set; nothing was run.[/red]")
        sys.exit(1)
    return RunRequest(
        base_url=base_url,
        api_key=api_key,
        model_name=args.model,
        model_type=args.model_type,
        prompt=args.prompt or "",
        prefill=args.prefill or "",
        system_prompt=args.system_prompt,
        depth=args.depth,
        max_width=args.max_width,
        cover_prob=args.cover_prob,
        from_node_id=from_node_id,
        sniff=not args.no_sniff,
    )


async def _run_with_progress(store: TreeStore, request: RunRequest, console: Console):
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, store.interrupt)
    except (NotImplementedError, RuntimeError):  # pragma: no cover - windows
        pass

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("[cyan]Querying", total=None)

        def on_change():
            state = store.get_state()
            roots = state.value.roots or []
            suffix = " (interrupting)" if state.interrupting else ""
            progress.update(
                task,
                description=f"[cyan]{_count_nodes(roots)} nodes{suffix}",
            )

        unsubscribe = store.subscribe(on_change)
        try:
            return await store.run(request)
        finally:
            unsubscribe()
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):  # pragma: no cover - windows
                pass


def _finish(store: TreeStore, args, out: str | None, console: Console, failed: bool):
    state = store.get_state()
    roots = state.value.roots or []
    if out:
        save_tree(out, SerializedTree(args.model, _settings(args), roots))
    console.print(render_tree(roots, title=args.model, show_ids=args.show_ids))
    if state.run_state == RunState.INTERRUPTED:
        console.print("[yellow]Interrupted; tree is partial.[/yellow]")
    if failed:
        console.print(f"[red]Run failed:[/red] {escape(str(state.value.error))}")
        sys.exit(1)


def cmd_build(args):
    console = Console()
    store = TreeStore()
    request = _request(args, console)
    logger.info(
        "Starting build; model=%s type=%s depth=%d width=%d cover=%.2f",
        request.model_name,
        request.model_type,
        request.depth,
        request.max_width,
        request.cover_prob,
    )
    failed = False
    try:
        asyncio.run(_run_with_progress(store, request, console))
    except Exception:
        failed = True
    _finish(store, args, args.out, console, failed)


def cmd_expand(args):
    console = Console()
    loaded = load_tree(args.tree)
    settings = loaded.model_settings
    # settings saved with the tree fill in whatever wasn't given on the command line
    args.model = args.model or loaded.model_name
    args.model_type = args.model_type or settings.get("kind", "chat")
    args.prompt = args.prompt if args.prompt is not None else settings.get("prompt", "")
    args.prefill = args.prefill if args.prefill is not None else settings.get("prefill", "")
    args.system_prompt = args.system_prompt or settings.get("systemPrompt")

    request = _request(args, console, from_node_id=args.node)
    store = TreeStore()
    store.set_tree(loaded.roots)
    text = store.token_and_prefix(args.node)
    logger.info("Expanding node %s: %r", args.node, text)
    failed = False
    try:
        asyncio.run(_run_with_progress(store, request, console))
    except Exception:
        failed = True
    _finish(store, args, args.out or args.tree, console, failed)


def cmd_sniff(args):
    base_url = args.base_url or os.getenv("OPENAI_BASE_URL") or "https://api.openai.com/v1"
    info = asyncio.run(sniff_api(base_url, os.getenv("OPENAI_API_KEY") or ""))
    print(json.dumps(info.to_dict(), ensure_ascii=False, indent=2))


def _add_model_args(p: argparse.ArgumentParser, *, required: bool):
    p.add_argument("--model", required=required, default=None, help="Model name")
    p.add_argument(
        "--model-type",
        choices=["chat", "base"],
        default="chat" if required else None,
        help="'chat' sends messages with an assistant prefill, 'base' a raw prompt",
    )
    p.add_argument("--prompt", default="" if required else None)
    p.add_argument("--prefill", default="" if required else None)
    p.add_argument("--system-prompt", default=None, help="System prompt (chat models)")
    p.add_argument("--depth", type=int, default=5, help="Max tokens per branch (default: 5)")
    p.add_argument(
        "--max-width", type=int, default=3, help="Max children per token (default: 3)"
    )
    p.add_argument(
        "--cover-prob",
        type=float,
        default=0.8,
        help="Stop adding children once this much probability is covered (default: 0.8)",
    )
    p.add_argument(
        "--base-url",
        default=None,
        help="OpenAI-compatible endpoint (default: OPENAI_BASE_URL or api.openai.com)",
    )
    p.add_argument(
        "--no-sniff",
        action="store_true",
        help="Skip probing /models for provider quirks",
    )
    p.add_argument("--show-ids", action="store_true", help="Print node ids in the tree")


def main():
    p = argparse.ArgumentParser(
        prog="logitloom",
        description="Explore the tree of likely continuations of a language model",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    p_b = sub.add_parser("build", help="Build a new tree from a prompt")
    _add_model_args(p_b, required=True)
    p_b.add_argument("--out", default=None, help="Write the tree snapshot as JSON")
    p_b.set_defaults(func=cmd_build)

    p_e = sub.add_parser("expand", help="Regrow the subtree under one node")
    p_e.add_argument("--tree", required=True, help="Snapshot written by `build`")
    p_e.add_argument("--node", required=True, help="Id of the node to expand")
    _add_model_args(p_e, required=False)
    p_e.add_argument("--out", default=None, help="Output path (default: overwrite --tree)")
    p_e.set_defaults(func=cmd_expand)

    p_s = sub.add_parser("sniff", help="Detect the provider behind a base URL")
    p_s.add_argument("--base-url", default=None)
    p_s.set_defaults(func=cmd_sniff)

    for sp in (p_b, p_e, p_s):
        sp.add_argument(
            "--log-level",
            default=None,
            help="TRACE, DEBUG, INFO, WARNING or ERROR (default: LOGITLOOM_LOG_LEVEL or INFO)",
        )

    args = p.parse_args()
    if args.log_level:
        set_level(args.log_level)
    args.func(args)


if __name__ == "__main__":
    main()
