#!/usr/bin/env python3
"""Chat with memory from the command line."""

import argparse
import logging
import sys
from config.settings import Settings
from orchestrator import ChatOrchestrator


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Memory-aware chat - send a message or inspect stored memory"
    )
    parser.add_argument(
        "--user",
        "-u",
        type=str,
        required=True,
        help="User ID owning the conversation"
    )
    parser.add_argument(
        "--message",
        "-m",
        type=str,
        help="Message to send"
    )
    parser.add_argument(
        "--conversation",
        "-c",
        type=str,
        help="Conversation ID to continue (a new one is created if omitted)"
    )
    parser.add_argument(
        "--memory-info",
        action="store_true",
        help="Show relevant memories and rolling summary instead of chatting"
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List the user's conversations instead of chatting"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        default="data/conversations.db",
        help="SQLite database path (default: data/conversations.db)"
    )
    parser.add_argument(
        "--provider",
        type=str,
        choices=["openai", "anthropic"],
        default="openai",
        help="LLM provider (default: openai)"
    )
    parser.add_argument(
        "--model",
        type=str,
        help="Override the provider's default model"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    if args.memory_info and not args.conversation:
        parser.error("--memory-info requires --conversation")
    if args.list and args.memory_info:
        parser.error("--list cannot be combined with --memory-info")
    if not (args.memory_info or args.list) and not args.message:
        parser.error("--message is required unless --memory-info or --list is given")

    settings = Settings(
        llm_provider=args.provider,
        llm_model=args.model,
        db_path=args.db_path,
        verbose=args.verbose,
    )

    try:
        orchestrator = ChatOrchestrator(settings=settings)

        if args.list:
            conversations = orchestrator.list_conversations(args.user)
            if not conversations:
                print("No conversations found")
            for conversation in conversations:
                updated = conversation.updated_at.strftime("%Y-%m-%d %H:%M")
                print(f"{conversation.conversation_id}  {updated}  {conversation.title or ''}")
            return

        if args.memory_info:
            report = orchestrator.memory_report(
                args.user, args.conversation, args.message or ""
            )
            print(f"Relevant memories: {report.memory_count}")
            for memory in report.memories:
                print(f"  - {memory}")
            if report.has_summary:
                print(f"\nConversation summary:\n{report.summary}")
            return

        reply = orchestrator.handle_message(
            args.user, args.message, conversation_id=args.conversation
        )
        print(f"[conversation {reply.conversation_id}]\n")
        print(reply.reply)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
