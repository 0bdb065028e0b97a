"""
CLI Interface — Interactive terminal chat with the agent.
Renders each session's event stream as it arrives and supports /commands,
multiple sessions, persistence and Ctrl+C cancellation.
"""

from __future__ import annotations
import asyncio
import logging
import os
import readline
import signal
import sys
import time
from datetime import datetime
from typing import Optional

from ..core.models import ToolCall
from ..core.session_manager import Session, SessionBusyError, SessionManager
from ..core.session_store import SessionData, SessionStore, SessionStoreError
from ..core.stream_events import (
    AgentEvent, Cancelled, Done, ErrorEvent, StreamDelta, ToolConfirm, ToolEnd, ToolStart,
    is_terminal,
)

logger = logging.getLogger(__name__)


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"


class EventRenderer:
    """Prints one run's events to a text stream as they arrive."""

    def __init__(self, out=None):
        self.out = out or sys.stdout
        self._in_text = False

    def _write(self, text: str) -> None:
        self.out.write(text)
        self.out.flush()

    def _end_text(self) -> None:
        if self._in_text:
            self._write("\n")
            self._in_text = False

    def render(self, event: AgentEvent) -> None:
        if isinstance(event, StreamDelta):
            if not self._in_text:
                self._write(f"\n{Colors.BOLD}{Colors.GREEN}Agent ▸{Colors.RESET} ")
                self._in_text = True
            self._write(event.text)

        elif isinstance(event, ToolStart):
            self._end_text()
            self._write(
                f"  {Colors.DIM}🔨 {Colors.CYAN}{event.name}{Colors.RESET}"
                f"{Colors.DIM}({event.args_preview}){Colors.RESET}\n"
            )

        elif isinstance(event, ToolConfirm):
            self._end_text()
            self._write(f"  {Colors.YELLOW}⚠ {event.name} needs approval ({event.risk}){Colors.RESET}\n")

        elif isinstance(event, ToolEnd):
            if event.success:
                mark = f"{Colors.GREEN}✓"
            else:
                mark = f"{Colors.RED}✗"
            self._write(
                f"  {mark} {event.name}{Colors.RESET} "
                f"{Colors.DIM}({event.duration_ms:.0f}ms) {event.result_preview}{Colors.RESET}\n"
            )

        elif isinstance(event, Done):
            self._end_text()

        elif isinstance(event, Cancelled):
            self._end_text()
            self._write(f"  {Colors.YELLOW}(Cancelled: {event.reason or 'by user'}){Colors.RESET}\n")

        elif isinstance(event, ErrorEvent):
            self._end_text()
            self._write(f"  {Colors.RED}Error [{event.kind}]: {event.message}{Colors.RESET}\n")


class CLI:
    """Interactive terminal interface over a SessionManager."""

    def __init__(
        self,
        manager: SessionManager,
        store: SessionStore,
        session: Optional[Session] = None,
        history_file: str = "~/.miniclaw_history",
    ):
        self.manager = manager
        self.store = store
        self.session = session or manager.create()
        self.history_file = os.path.expanduser(history_file)
        self._running = False
        manager.approver = self.confirm_tool

    def _setup_readline(self) -> None:
        """Configure readline for command history."""
        try:
            readline.set_history_length(1000)
            if os.path.exists(self.history_file):
                readline.read_history_file(self.history_file)
        except OSError:
            pass

    def _save_readline(self) -> None:
        """Save command history."""
        try:
            readline.write_history_file(self.history_file)
        except OSError:
            pass

    def _print_banner(self) -> None:
        """Print welcome banner."""
        print(f"""
{Colors.BOLD}{Colors.CYAN}╔══════════════════════════════════════════╗
║              🦀 miniclaw                 ║
╚══════════════════════════════════════════╝{Colors.RESET}

  {Colors.BOLD}Model:{Colors.RESET}   {self.manager.provider.model}
  {Colors.BOLD}Session:{Colors.RESET} {self.session.id} ({self.session.name})
  {Colors.DIM}Type your message and press Enter.
  Use /help for available commands.
  Press Ctrl+C to cancel a running reply, Ctrl+D to exit.{Colors.RESET}
""")

    # ── Commands ─────────────────────────────────────────────────

    async def _handle_command(self, cmd: str) -> bool:
        """
        Handle slash commands. Returns True if the command was handled,
        False if it should be sent to the agent.
        """
        parts = cmd.strip().split(None, 1)
        command = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        if command == "/help":
            self._print_help()

        elif command == "/clear":
            self.session.clear()
            print(f"  {Colors.GREEN}✓ Conversation history cleared.{Colors.RESET}\n")

        elif command == "/stats":
            self._show_stats()

        elif command == "/new":
            self.session = self.manager.create(name=arg)
            print(f"  {Colors.GREEN}✓ New session {self.session.id} ({self.session.name}){Colors.RESET}\n")

        elif command == "/sessions":
            self._show_sessions()

        elif command == "/switch":
            self._switch(arg)

        elif command == "/save":
            path = self.store.save_session(SessionData.from_session(self.session))
            print(f"  {Colors.GREEN}✓ Saved to {path}{Colors.RESET}\n")

        elif command == "/saved":
            self._show_saved()

        elif command == "/load":
            self._load(arg)

        elif command == "/export":
            if not arg:
                print(f"  {Colors.YELLOW}Usage: /export PATH{Colors.RESET}\n")
            else:
                path = self.store.export_session(SessionData.from_session(self.session), arg)
                print(f"  {Colors.GREEN}✓ Exported to {path}{Colors.RESET}\n")

        elif command == "/import":
            self._import(arg)

        elif command in ("/exit", "/quit"):
            self._running = False

        else:
            return False
        return True

    def _print_help(self) -> None:
        print(f"""
{Colors.BOLD}Available Commands:{Colors.RESET}

  {Colors.CYAN}/help{Colors.RESET}          Show this help message
  {Colors.CYAN}/clear{Colors.RESET}         Clear conversation history
  {Colors.CYAN}/stats{Colors.RESET}         Show token usage for this session
  {Colors.CYAN}/new [name]{Colors.RESET}    Start a new session
  {Colors.CYAN}/sessions{Colors.RESET}      List open sessions
  {Colors.CYAN}/switch ID{Colors.RESET}     Switch to another open session
  {Colors.CYAN}/save{Colors.RESET}          Save this session to disk
  {Colors.CYAN}/saved{Colors.RESET}         List saved sessions
  {Colors.CYAN}/load ID{Colors.RESET}       Open a saved session
  {Colors.CYAN}/export PATH{Colors.RESET}   Export this session to a JSON file
  {Colors.CYAN}/import PATH{Colors.RESET}   Import a session from a JSON file
  {Colors.CYAN}/exit{Colors.RESET}          Exit
""")

    def _show_stats(self) -> None:
        stats = self.session.stats
        print(f"""
  {Colors.BOLD}Session {self.session.id}{Colors.RESET}
    Requests:      {stats.request_count}
    Completed:     {stats.completed_runs}
    Input tokens:  {stats.total_input_tokens}
    Output tokens: {stats.total_output_tokens}
    Total tokens:  {stats.total_tokens}
    Context:       ~{self.session.agent.estimate_context_tokens()} / {self.session.agent.context_window} tokens
""")

    def _show_sessions(self) -> None:
        print(f"\n  {Colors.BOLD}Open sessions:{Colors.RESET}")
        for s in self.manager.list():
            marker = f"{Colors.GREEN}*" if s is self.session else " "
            state = f" {Colors.YELLOW}(running){Colors.RESET}" if s.is_running else ""
            print(
                f"  {marker} {s.id}{Colors.RESET}  {s.name}  "
                f"{Colors.DIM}{len(s.messages)} messages{Colors.RESET}{state}"
            )
        print()

    def _switch(self, session_id: str) -> None:
        session = self.manager.get(session_id) if session_id else None
        if session is None:
            print(f"  {Colors.RED}No open session matches {session_id!r}{Colors.RESET}\n")
            return
        self.session = session
        print(f"  {Colors.GREEN}✓ Switched to {session.id} ({session.name}){Colors.RESET}\n")

    def _show_saved(self) -> None:
        saved = self.store.list_sessions()
        if not saved:
            print(f"  {Colors.DIM}No saved sessions.{Colors.RESET}\n")
            return
        print(f"\n  {Colors.BOLD}Saved sessions:{Colors.RESET}")
        for data in saved:
            created = datetime.fromtimestamp(data.created_at).strftime("%Y-%m-%d %H:%M")
            print(
                f"    {data.id}  {data.name}  "
                f"{Colors.DIM}{created}, {len(data.messages)} messages{Colors.RESET}"
            )
        print()

    def _open(self, data: SessionData) -> None:
        live = self.manager.get(data.id) if data.id in self.manager else None
        if live is not None:
            self.session = live
        else:
            self.session = data.restore(self.manager)
        print(
            f"  {Colors.GREEN}✓ Opened session {self.session.id} "
            f"({len(self.session.messages)} messages){Colors.RESET}\n"
        )

    def _load(self, session_id: str) -> None:
        if not session_id:
            print(f"  {Colors.YELLOW}Usage: /load ID{Colors.RESET}\n")
            return
        try:
            data = self.store.load_session(session_id)
        except SessionStoreError as e:
            print(f"  {Colors.RED}{e}{Colors.RESET}\n")
            return
        self._open(data)

    def _import(self, path: str) -> None:
        if not path:
            print(f"  {Colors.YELLOW}Usage: /import PATH{Colors.RESET}\n")
            return
        try:
            data = self.store.import_session(path)
        except SessionStoreError as e:
            print(f"  {Colors.RED}{e}{Colors.RESET}\n")
            return
        if data.id in self.manager:
            # Keep the open session; the import gets a fresh id
            self.session = self.manager.create(
                name=data.name, messages=data.messages, stats=data.stats,
            )
            print(f"  {Colors.GREEN}✓ Imported as {self.session.id}{Colors.RESET}\n")
        else:
            self._open(data)

    # ── Running a turn ───────────────────────────────────────────

    async def run_turn(self, user_input: str, renderer: Optional[EventRenderer] = None) -> None:
        """Send one message and render its events until the run ends."""
        renderer = renderer or EventRenderer()
        session = self.session
        loop = asyncio.get_running_loop()

        async with session.subscribe() as sub:
            task = session.start(user_input)
            sigint_installed = False
            try:
                loop.add_signal_handler(signal.SIGINT, session.cancel, "Interrupted by user")
                sigint_installed = True
            except (NotImplementedError, RuntimeError):
                pass

            try:
                saw_terminal = await self._render_run(sub, task, renderer)
                try:
                    await task
                except Exception as e:
                    logger.exception("Agent run crashed")
                    if not saw_terminal:
                        renderer.render(ErrorEvent(message=str(e), kind=type(e).__name__))
            finally:
                if sigint_installed:
                    loop.remove_signal_handler(signal.SIGINT)

    @staticmethod
    async def _render_run(sub, task: asyncio.Task, renderer: EventRenderer) -> bool:
        """
        Render events until a terminal one, or until ``task`` ends without
        emitting one.  Returns whether a terminal event was seen.
        """
        while True:
            next_event = asyncio.ensure_future(sub.get())
            await asyncio.wait({next_event, task}, return_when=asyncio.FIRST_COMPLETED)

            if not next_event.done():
                # Everything the finished task emitted is already queued
                next_event.cancel()
                for event in sub.drain():
                    renderer.render(event)
                    if is_terminal(event):
                        return True
                return False

            event = next_event.result()
            if event is None:
                return False
            renderer.render(event)
            if is_terminal(event):
                return True

    async def confirm_tool(self, call: ToolCall, description: str) -> bool:
        """Ask on the terminal whether a dangerous tool call may run."""
        loop = asyncio.get_running_loop()
        answer = await loop.run_in_executor(
            None,
            self._blocking_input,
            f"  {Colors.YELLOW}{description}\n  Allow? [y/N] {Colors.RESET}",
        )
        return answer.lower() in ("y", "yes")

    def _blocking_input(self, prompt: str) -> str:
        """Read input from stdin (runs in thread to avoid blocking event loop)."""
        return input(prompt).strip()

    async def run(self) -> None:
        """Main interactive loop."""
        self._running = True
        self._setup_readline()
        self._print_banner()

        loop = asyncio.get_running_loop()

        while self._running:
            try:
                user_input = await loop.run_in_executor(
                    None,
                    self._blocking_input,
                    f"{Colors.BOLD}{Colors.BLUE}You ▸ {Colors.RESET}",
                )

                if not user_input:
                    continue

                if user_input.startswith("/"):
                    handled = await self._handle_command(user_input)
                    if handled:
                        continue

                t0 = time.time()
                await self.run_turn(user_input)
                print(f"  {Colors.DIM}({time.time() - t0:.1f}s){Colors.RESET}\n")

            except KeyboardInterrupt:
                print(f"\n  {Colors.DIM}(Cancelled){Colors.RESET}\n")
                continue

            except EOFError:
                print(f"\n{Colors.DIM}Goodbye!{Colors.RESET}")
                self._running = False

            except (SessionBusyError, SessionStoreError, OSError) as e:
                print(f"\n  {Colors.RED}Error: {e}{Colors.RESET}\n")

        await self.manager.shutdown()
        self._save_readline()
        print(f"\n{Colors.DIM}Session ended.{Colors.RESET}")
