"""Command-line entry point for support threads."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from support_threads.conversation import ThreadMessagesList
from support_threads.core import AppSettings, configure_logging, load_app_settings
from support_threads.core.container import PAGE_CACHE, STORE, build_container
from support_threads.core.models import NormalizedMessage, ThreadMessagesView
from support_threads.ingestion import create_normalization_context


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Support thread message viewer")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "thread"],
        help="Operation to execute.",
    )
    parser.add_argument(
        "conversation_id",
        nargs="?",
        default=None,
        help="Conversation to display for the thread command.",
    )
    parser.add_argument(
        "--pages",
        type=int,
        default=1,
        help="Number of pages to load for the thread command (default: 1).",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit code."""
    command = args.command
    if command == "info":
        print("Support threads is ready.")
        print(f"Store backend: {settings.store.backend}")
        if settings.store.backend == "sqlite":
            print(f"Database path: {settings.store.db_path}")
        else:
            print(f"API base URL: {settings.store.base_url}")
        print(
            "Page sizes: first "
            f"{settings.threads.initial_visible_count}, "
            f"then {settings.threads.page_size}"
        )
        return 0
    if command == "thread":
        if not args.conversation_id:
            print("The thread command needs a conversation id.")
            return 2
        if args.pages <= 0:
            print("--pages must be positive.")
            return 2
        return asyncio.run(_run_thread(settings, args.conversation_id, args.pages))
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    return execute(args, settings)


async def _run_thread(settings: AppSettings, conversation_id: str, pages: int) -> int:
    """Load up to ``pages`` pages of a conversation and print them."""
    container = build_container(settings)
    agents = settings.agents
    context = create_normalization_context(
        agent_emails=agents.emails,
        agent_phones=agents.phones,
        agent_domains=agents.domains,
        current_user_email=agents.current_user_email,
    )
    try:
        thread_list = ThreadMessagesList(
            container.resolve(STORE),
            settings.threads,
            cache=container.resolve(PAGE_CACHE),
            context=context,
        )
        view = await thread_list.open(conversation_id)
        for _ in range(pages - 1):
            if view.error is not None or not view.has_next_page:
                break
            view = await thread_list.fetch_next_page()
    finally:
        await container.aclose()

    if view.error is not None:
        print(f"Loading messages failed: {view.error}")
        return 1
    _print_view(view)
    return 0


def _print_view(view: ThreadMessagesView) -> None:
    if not view.messages:
        print("No messages found.")
        return
    print(f"Showing {view.loaded_count} of {view.total_count} message(s):")
    header = f"{'When':<16}  {'Dir':<8}  {'Author':<24}  Body"
    print(header)
    print("-" * len(header))
    for message in view.messages:
        print(_format_message(message))
    if view.has_next_page:
        if view.remaining is None:
            print("Older messages are available.")
        else:
            print(f"{view.remaining} older message(s) not loaded.")


def _format_message(message: NormalizedMessage) -> str:
    when = message.created_at.isoformat(timespec="minutes")[:16]
    body = " ".join(message.visible_body.split())
    if len(body) > 60:
        body = body[:57] + "..."
    marker = "*" if message.is_synthetic else ""
    return (
        f"{when:<16}  {message.direction:<8}  "
        f"{message.author_label[:24]:<24}  {marker}{body}"
    )


if __name__ == "__main__":
    raise SystemExit(main())
