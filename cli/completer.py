"""Custom completer for PeerShare CLI with server address completion."""

from typing import Callable, Iterable, List

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from cli.constants import ADDRESS_COMMANDS, COMMANDS


class PeerShareCompleter(Completer):
    """
    Custom completer that provides:
    - Command name completion for the first token
    - Configured server addresses for commands that take addresses
    """

    def __init__(self, servers_provider: Callable[[], List[str]]):
        """
        Args:
            servers_provider: Returns the currently configured server addresses
        """
        self.servers_provider = servers_provider

    def get_completions(
        self, document: Document, complete_event
    ) -> Iterable[Completion]:
        text = document.text_before_cursor
        tokens = text.split()

        is_typing_new_token = text.endswith(" ") or not tokens

        if not tokens or (len(tokens) == 1 and not is_typing_new_token):
            yield from self._complete_commands(tokens[0] if tokens else "")
            return

        command = tokens[0].lower()
        if command not in ADDRESS_COMMANDS:
            return

        current_word = "" if is_typing_new_token else tokens[-1]
        already_typed = set(tokens[1:])
        if not is_typing_new_token:
            already_typed.discard(current_word)

        for address in self.servers_provider():
            if address.startswith(current_word) and address not in already_typed:
                yield Completion(address, start_position=-len(current_word))

    def _complete_commands(self, partial: str) -> Iterable[Completion]:
        """Complete command names matching the partial input."""
        partial_lower = partial.lower()
        for cmd in COMMANDS:
            if cmd.startswith(partial_lower):
                yield Completion(cmd, start_position=-len(partial))
