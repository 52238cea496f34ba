from __future__ import annotations

"""CLI utility to load a markdown vault and ask it questions."""

import argparse
import asyncio

from notevault.app.dependencies import get_session
from notevault.loaders.vault import load_vault
from notevault.rag.guardrails import QuestionState
from notevault.rag.pipeline import ChatPipeline, TurnResult


def _print_result(result: TurnResult) -> None:
    for message in result.messages:
        if message.is_confirmation_prompt:
            print("[system] The notes do not answer this question.")
            continue
        if message.role.value == "user":
            continue
        print(f"[{message.role.value}] {message.content}")
        if message.summary is not None:
            print(message.summary.summary)
            for point in message.summary.key_points:
                print(f"  - {point}")
            if message.summary.references:
                print("Sources: " + ", ".join(message.summary.references))


async def _ask(session: ChatPipeline, question: str, external: bool) -> None:
    result = await session.ask(question)
    _print_result(result)
    if result.state != QuestionState.AWAITING_CONFIRMATION:
        return
    prompt = result.messages[-1]
    if external:
        _print_result(await session.approve(prompt.id))
    else:
        _print_result(session.decline(prompt.id))


async def _run(args: argparse.Namespace) -> None:
    session = get_session()
    files = load_vault(args.vault)
    report = await session.ingest(
        files,
        on_progress=lambda fraction: print(f"Embedding... {fraction:.0%}", end="\r"),
    )
    print(f"Loaded {report.files} files as {report.chunks} chunks.")
    if args.question:
        await _ask(session, args.question, args.external)
        return
    while True:
        try:
            question = input("> ").strip()
        except EOFError:
            break
        if question in {"exit", "quit"}:
            break
        if question:
            await _ask(session, question, args.external)


def main() -> None:
    """Load the vault using app settings and answer questions."""
    parser = argparse.ArgumentParser(description="Chat with a directory of markdown notes.")
    parser.add_argument("vault", help="Directory containing .md notes.")
    parser.add_argument("-q", "--question", help="Ask one question and exit.")
    parser.add_argument(
        "--external",
        action="store_true",
        help="Answer from general knowledge when the notes have no answer.",
    )
    args = parser.parse_args()
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
