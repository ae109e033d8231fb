"""REPL with prompt_toolkit for user interaction."""

import os
import sys
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory

from cli.commands import (
    get_config,
    handle_catalog,
    handle_download,
    handle_metadata,
    handle_servers,
)
from cli.completer import PeerShareCompleter
from cli.constants import (
    HELP_TEXT,
    LOGO,
    PROMPT_TEXT,
    STYLE,
    WELCOME_HELP,
    WELCOME_TITLE,
)
from cli.models import (
    CatalogCommand,
    DownloadCommand,
    MetadataCommand,
    ServersCommand,
)
from cli.parser import ParseError, parse_command

EXIT = object()


def clear_screen() -> None:
    """Clear the terminal screen (cross-platform)."""
    os.system("cls" if sys.platform == "win32" else "clear")


def show_welcome() -> None:
    print(LOGO)
    print(WELCOME_TITLE)
    print(WELCOME_HELP)


def dispatch_command(cmd_obj) -> str:
    """Dispatch parsed command to appropriate handler."""
    if isinstance(cmd_obj, CatalogCommand):
        return handle_catalog(cmd_obj)
    elif isinstance(cmd_obj, MetadataCommand):
        return handle_metadata(cmd_obj)
    elif isinstance(cmd_obj, DownloadCommand):
        return handle_download(cmd_obj)
    elif isinstance(cmd_obj, ServersCommand):
        return handle_servers(cmd_obj)
    else:
        return f"Unknown command type: {type(cmd_obj)}"


def handle_line(user_input: str):
    """
    Run one line of user input.

    Returns:
        Text to print, None when there is nothing to print, or EXIT
    """
    text = user_input.strip()
    if not text:
        return None

    if text == "exit":
        return EXIT
    if text == "help":
        return HELP_TEXT
    if text == "clear":
        clear_screen()
        show_welcome()
        return None

    try:
        return dispatch_command(parse_command(text))
    except ParseError as e:
        return f"Error: {e}"


def repl_loop(session: Optional[PromptSession] = None) -> None:
    """Start interactive REPL with prompt_toolkit."""
    if session is None:
        session = PromptSession(
            completer=PeerShareCompleter(lambda: get_config().get_servers()),
            history=InMemoryHistory(),
            style=STYLE,
        )

    clear_screen()
    show_welcome()

    while True:
        try:
            result = handle_line(session.prompt([("class:prompt", PROMPT_TEXT)]))
        except KeyboardInterrupt:
            continue
        except EOFError:
            print("\nGoodbye!")
            break

        if result is EXIT:
            print("Goodbye!")
            break
        if result is not None:
            print(result)
