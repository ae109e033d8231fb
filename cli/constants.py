"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

COMMANDS = ["catalog", "metadata", "download", "servers", "clear", "exit", "help"]

# Commands whose arguments may be node addresses
ADDRESS_COMMANDS = ("catalog", "metadata", "download", "servers")

STYLE = Style.from_dict(
    {
        "prompt": "#2E9E6A bold",
        "command": "#0088ff bold",
    }
)

GREEN = "\033[38;2;46;158;106m"
RESET = "\033[0m"

LOGO = f"""{GREEN}
 ___               ___ _
| _ \\___ ___ _ _ / __| |_  __ _ _ _ ___
|  _/ -_) -_) '_|\\__ \\ ' \\/ _` | '_/ -_)
|_| \\___\\___|_|  |___/_||_\\__,_|_| \\___|
{RESET}"""

WELCOME_TITLE = "PeerShare CLI - chunked peer-to-peer file sharing"
WELCOME_HELP = "Type 'help' for commands or 'exit' to quit.\n"

PROMPT_TEXT = "peershare> "

HELP_TEXT = """Available commands:
  catalog <address>                              List files hosted by a node
  metadata <address> <file_name>                 Show the chunk list of a hosted file
  download <hash> <file_name> [address ...]      Download a file by content hash
                                                 (no address = configured servers;
                                                 the first address is queried for the catalog)
  servers [address ...]                          Show or replace the configured servers
  clear                                          Clear screen and redisplay welcome message
  help                                           Show this help
  exit                                           Exit REPL

Addresses use host:port format.
Examples:
  catalog 127.0.0.1:8080
  metadata 127.0.0.1:8080 report.pdf
  download 9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08 report.pdf 127.0.0.1:8080 127.0.0.1:8081
  servers 127.0.0.1:8080 127.0.0.1:8081"""
