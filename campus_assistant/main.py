"""Interactive terminal chat on top of the streaming chat engine.

Run with:
    python -m campus_assistant.main

Commands: /new, /sessions, /switch <session_id>, /quit
"""

import asyncio
import logging
import sys

from campus_assistant.config import settings
from campus_assistant.dependencies import build_engine, close_resources
from campus_assistant.engine.chat import ChatEngine
from campus_assistant.errors import AssistantError
from campus_assistant.models.citations import Citation, MailSearchQuery
from campus_assistant.models.messages import ChatMessage, MessageRole

logger = logging.getLogger(__name__)


def configure_logging(level: str = settings.log_level) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


class ConsoleView:
    """Renders assistant messages to stdout as they are revealed."""

    def __init__(self, out=None) -> None:
        self.out = out or sys.stdout
        self._printed: dict[str, str] = {}

    def show_message(self, message: ChatMessage) -> None:
        if message.role is MessageRole.USER:
            return
        printed = self._printed.get(message.id, "")
        if not printed and message.text:
            self.out.write("assistant: ")

        if message.is_streaming:
            self.out.write(message.text[len(printed):])
            self._printed[message.id] = message.text
        else:
            if printed and not message.text.startswith(printed):
                # canonical answer replaced the revealed text
                self.out.write("\nassistant: " + message.text)
            else:
                self.out.write(message.text[len(printed):])
            self.out.write("\n")
            self._printed.pop(message.id, None)
        self.out.flush()

    def show_history(self, messages: list[ChatMessage]) -> None:
        for message in messages:
            self.out.write(f"{message.role.value}: {message.text}\n")

    def show_citations(self, citations: list[Citation]) -> None:
        latest = citations[-1]
        self.out.write(
            f"[source: {latest.source}] {latest.subject or ''} "
            f"({latest.received_on or 'undated'}), {len(citations)} citation(s)\n"
        )
        for attachment in latest.attachments:
            self.out.write(f"    {attachment.file_name}: {attachment.link}\n")


def announce_mail_search(query: MailSearchQuery) -> None:
    print(f"[mail search] subject={query.subject!r} from={query.sender or '-'}")


async def handle_line(engine: ChatEngine, view: ConsoleView, line: str) -> bool:
    """Run one input line. Returns False when the user asked to quit."""
    if line == "/quit":
        return False
    if line == "/new":
        await engine.new_conversation()
        print("Started a new conversation")
    elif line == "/sessions":
        for summary in await engine.sessions.list_sessions():
            print(f"  {summary.session_id}  {summary.session_title or ''}")
    elif line.startswith("/switch "):
        hydrated = await engine.switch_session(line.split(maxsplit=1)[1])
        view.show_history(hydrated.messages)
    elif not await engine.send(line):
        print("Not connected; message was not sent")
    return True


async def run() -> int:
    view = ConsoleView()
    engine = build_engine(
        mail_search=announce_mail_search,
        on_message=view.show_message,
        on_citations=view.show_citations,
    )

    try:
        hydrated = await engine.start()
    except AssistantError as exc:
        logger.error("Could not start chat: %s", exc)
        await close_resources()
        return 1

    print(f"{settings.app_name} (/new, /sessions, /switch <id>, /quit)")
    if hydrated is not None:
        print(f"Resumed session {hydrated.session.session_id}")
        view.show_history(hydrated.messages)

    try:
        while True:
            line = (await asyncio.to_thread(input, "> ")).strip()
            if not line:
                continue
            try:
                if not await handle_line(engine, view, line):
                    break
            except AssistantError as exc:
                print(f"Error: {exc}")
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        await engine.stop()
        await close_resources()
    return 0


def main() -> None:
    configure_logging()
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
