"""CLI: rolling-context init, chat, show, compact, threads, config validate."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import yaml

from ..config import load_config, validate_config
from ..manager import ConversationManager
from ..storage import build_store
from ..types import DEFAULT_SYSTEM_PROMPT, RollingContextError

CONFIG_TEMPLATE = {
    "version": "0.1",
    "token_counter": "estimate",
    "conversation": {
        "max_prompt_tokens": 6000,
        "compress_after_tokens": 4000,
        "keep_recent": 8,
        "system_prompt": DEFAULT_SYSTEM_PROMPT,
        "compaction": {"min_chunk": 6, "chunk_fraction": 0.25},
    },
    "completion": {"provider": "ollama", "model": "qwen3:4b-instruct-2507-fp16"},
    "providers": {
        "ollama": {"type": "generic_openai", "base_url": "http://127.0.0.1:11434/v1"},
    },
    "storage": {"backend": "sqlite"},
}


def _get_manager(args) -> ConversationManager:
    config = load_config(args.config)
    return ConversationManager.from_config(config=config)


def cmd_init(args):
    """Write a starter config file."""
    output = Path.cwd() / "rolling-context.yaml"
    if output.exists() and not args.force:
        print(f"Config file already exists: {output}", file=sys.stderr)
        print("Use --force to overwrite.", file=sys.stderr)
        sys.exit(1)

    output.write_text(yaml.safe_dump(CONFIG_TEMPLATE, sort_keys=False))
    print(f"Created {output}")
    print()
    print("Next steps:")
    print("  1. Start Ollama:      ollama serve")
    print("  2. Validate config:   rolling-context config validate")
    print("  3. Chat:              rolling-context chat")


def cmd_threads(args):
    """List stored threads."""
    config = load_config(args.config)
    store = build_store(config.storage)
    try:
        ids = store.list_threads()
    finally:
        store.close()

    if not ids:
        print("No threads yet.")
        return
    for thread_id in ids:
        print(thread_id)


def cmd_show(args):
    """Print a thread's summary and active messages."""
    manager = _get_manager(args)
    try:
        view = manager.get_thread_view(args.thread_id)
    finally:
        manager.close()

    print(f"Thread: {args.thread_id}")
    print("=" * 60)
    print("Summary:")
    print(view.summary or "(none yet)")
    print()
    print(f"Messages ({len(view.messages)}):")
    for m in view.messages:
        print(f"[{m.created_at.strftime('%Y-%m-%d %H:%M:%S')}] {m.role.value.upper()}: {m.content}")


def cmd_compact(args):
    """Compact a thread now if it is over threshold."""
    manager = _get_manager(args)
    try:
        report = manager.maybe_compress(args.thread_id)
    finally:
        manager.close()

    if report:
        print(f"Compacted {report.messages_compacted} messages")
        print(f"Tokens: {report.tokens_before:,} -> {report.tokens_after:,}")
        print(f"Summary tokens: {report.summary_tokens:,}")
    else:
        print("No compaction needed.")


def cmd_chat(args):
    """Interactive chat loop over a thread."""
    manager = _get_manager(args)
    thread_id = manager.init_thread(args.thread)
    print(f"Thread: {thread_id}  (Ctrl+D to exit)")
    try:
        while True:
            try:
                line = input("you> ").strip()
            except EOFError:
                print()
                break
            if not line:
                continue
            try:
                reply = manager.generate(thread_id, line, timeout=args.timeout)
            except RollingContextError as e:
                print(f"error: {e}", file=sys.stderr)
                continue
            print(f"assistant> {reply}")
    finally:
        manager.close()


def cmd_config_validate(args):
    """Validate config file."""
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    errors = validate_config(config)
    if errors:
        print("Config validation errors:")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)
    else:
        conv = config.conversation
        print("Config is valid.")
        print(f"  Provider: {config.completion.provider} ({config.completion.model})")
        print(f"  Prompt budget: {conv.max_prompt_tokens:,} tokens")
        print(f"  Compact after: {conv.compress_after_tokens:,} tokens")
        print(f"  Recent window: {conv.keep_recent} messages")
        print(f"  Storage: {config.storage.backend}")


def main():
    parser = argparse.ArgumentParser(
        prog="rolling-context",
        description="Bounded conversation context with rolling summary compaction",
    )
    parser.add_argument("--config", "-c", help="Path to config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    init_parser = subparsers.add_parser("init", help="Write a starter config file")
    init_parser.add_argument("--force", action="store_true", help="Overwrite existing config")

    subparsers.add_parser("threads", help="List stored threads")

    show_parser = subparsers.add_parser("show", help="Show a thread's summary and messages")
    show_parser.add_argument("thread_id", help="Thread id")

    compact_parser = subparsers.add_parser("compact", help="Compact a thread if over threshold")
    compact_parser.add_argument("thread_id", help="Thread id")

    chat_parser = subparsers.add_parser("chat", help="Interactive chat on a thread")
    chat_parser.add_argument("--thread", "-t", help="Existing or new thread id")
    chat_parser.add_argument("--timeout", type=float, help="Per-call completion timeout (seconds)")

    config_parser = subparsers.add_parser("config", help="Config utilities")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Validate config file")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "init":
            cmd_init(args)
        elif args.command == "threads":
            cmd_threads(args)
        elif args.command == "show":
            cmd_show(args)
        elif args.command == "compact":
            cmd_compact(args)
        elif args.command == "chat":
            cmd_chat(args)
        elif args.command == "config":
            if args.config_command == "validate":
                cmd_config_validate(args)
            else:
                print("Usage: rolling-context config validate")
                sys.exit(1)
    except RollingContextError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
