"""
Line-oriented chat REPL on top of the inference engine.

Uses prompt_toolkit for input and Rich for output. The engine runs on its
own thread, so the loop is synchronous: submit, then wait for NewText,
printing streamed fragments as they arrive.
"""

from pathlib import Path
from typing import Optional

from loguru import logger
from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from sentient.config.settings import SamplingProfile, Settings
from sentient.core.models import Character, Conversation, Turn
from sentient.engine.messages import InferenceContext, NewText, NewTextFragment
from sentient.engine.worker import InferenceEngine
from sentient.utils.exceptions import EngineBusyError

HELP_TEXT = """# Commands

- `/retry` - Regenerate the last reply
- `/continue` - Let the character keep writing its last reply
- `/cancel` - Ask the engine to abandon the reply being generated
- `/help` - Show this help message
- `/quit` - Shut down and exit

Ctrl+C while a reply is being generated also cancels it (remote models only).
"""


class ChatREPL:
    """
    Interactive chat with a single character.

    The engine works on copies of the conversation and hands the updated
    copy back with each reply.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        settings: Settings,
        character: Character,
        sampling: SamplingProfile,
        conversation: Optional[Conversation] = None,
        history_file: str = ".sentient_history",
        console: Optional[Console] = None,
    ):
        self.engine = engine
        self.settings = settings
        self.character = character
        self.sampling = sampling
        self.conversation = conversation or Conversation.from_greeting(
            character, settings.display_name
        )
        self.console = console or Console()

        history_path = Path.home() / history_file
        self.session = PromptSession(history=FileHistory(str(history_path)))
        logger.info(f"REPL initialized with history at {history_path}")

    def run(self) -> None:
        """Prompt for input until /quit or Ctrl+D."""
        self._display_welcome()

        while True:
            try:
                user_input = self.session.prompt(f"{self.settings.display_name}> ")

                if not user_input.strip():
                    continue

                if user_input.startswith("/"):
                    if not self.handle_command(user_input):
                        break
                    continue

                self.conversation.append(Turn.from_text(self.settings.display_name, user_input))
                self.reply()

            except KeyboardInterrupt:
                self.console.print("\n[yellow]Interrupted (use /quit to exit)[/yellow]")
                continue

            except EOFError:
                self.console.print("\n[cyan]Goodbye![/cyan]")
                break

            except Exception as e:
                logger.exception(f"Error in REPL loop: {e}")
                self.console.print(f"[red]Error: {e}[/red]")

    def handle_command(self, command: str) -> bool:
        """
        Handle a slash command.

        Returns:
            True to keep the REPL running, False to exit
        """
        command = command.strip().lower()

        if command in ("/quit", "/exit"):
            self.console.print("[cyan]Goodbye![/cyan]")
            return False

        if command == "/help":
            self.console.print(Markdown(HELP_TEXT))
        elif command == "/retry":
            self.retry()
        elif command == "/continue":
            last = self.conversation.last()
            if last is None or last.speaker != self.character.name:
                self.console.print("[yellow]Nothing to continue[/yellow]")
            else:
                self.reply(continue_last_turn=True)
        elif command == "/cancel":
            self.engine.cancel()
            self.console.print("[dim]Cancel requested[/dim]")
        else:
            self.console.print(f"[red]Unknown command: {command}[/red]")
            self.console.print("[dim]Available commands: /retry, /continue, /cancel, /help, /quit[/dim]")
        return True

    def build_context(self, continue_last_turn: bool = False) -> InferenceContext:
        return InferenceContext(
            character=self.character,
            conversation_owner=self.character,
            conversation=self.conversation,
            sampling=self.sampling,
            continue_last_turn=continue_last_turn,
        )

    def reply(self, continue_last_turn: bool = False) -> Optional[str]:
        """Ask the engine for the character's next words and record them.

        The conversation that comes back with the reply replaces ours, so
        embeddings computed by the worker are kept for the next request.
        """
        try:
            self.engine.submit(self.build_context(continue_last_turn), timeout=5.0)
        except EngineBusyError as e:
            self.console.print(f"[red]{e}[/red]")
            return None

        response = self._await_reply()
        if response.text is None:
            self.console.print("[red]No reply was generated (see the log for details)[/red]")
            return None

        conversation = response.context.conversation
        if continue_last_turn:
            turn = conversation.last()
            turn.add_to_last(response.text)
        else:
            turn = Turn.from_text(self.character.name, response.text.strip())
            conversation.append(turn)
        self.conversation = conversation

        self._display_turn(turn)
        return response.text

    def retry(self) -> Optional[str]:
        """Regenerate the character's last reply, keeping it if that fails."""
        last = self.conversation.last()
        if last is None or last.speaker != self.character.name:
            return self.reply()

        self.conversation.pop()
        text = self.reply()
        if text is None:
            self.conversation.append(last)
        return text

    def _await_reply(self) -> NewText:
        streamed = False
        while True:
            try:
                response = self.engine.receive(timeout=0.1)
            except KeyboardInterrupt:
                self.engine.cancel()
                self.console.print("\n[yellow]Cancelling...[/yellow]")
                continue

            if response is None:
                continue
            if isinstance(response, NewTextFragment):
                self.console.print(response.text, end="", markup=False, highlight=False)
                streamed = True
                continue
            if isinstance(response, NewText):
                if streamed:
                    self.console.print()
                return response
            logger.debug(f"Ignoring {type(response).__name__} while waiting for a reply")

    def _display_welcome(self) -> None:
        self.console.print(
            Panel(
                Markdown(f"# Chatting with {self.character.name}\n\n{HELP_TEXT}"),
                title="Sentient",
                border_style="blue",
            )
        )
        for turn in self.conversation:
            self._display_turn(turn)

    def _display_turn(self, turn: Turn) -> None:
        border = "green" if turn.speaker == self.character.name else "white"
        self.console.print(Panel(turn.text(), title=turn.speaker, border_style=border))
