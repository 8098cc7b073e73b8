"""
Console status surface: state changes, messages and interactive prompts
"""
import getpass
import sys
from typing import Optional

from .errors import ErrorCode, format_message
from .utils.logging import log, warn


class ConsoleUI:
    """
    Reports orchestrator state and errors on the console and asks the
    operator for corrected settings. With ``interactive=False`` (or when
    stdin is not a terminal) every prompt is declined.
    """

    def __init__(self, interactive: Optional[bool] = None):
        if interactive is None:
            interactive = sys.stdin.isatty()
        self.interactive = interactive
        self.state = None

    def set_state(self, state):
        self.state = state
        log(f"[state] {state.value}")

    def info(self, msg: str):
        log(msg)

    def error(self, code: ErrorCode, detail: Optional[str] = None):
        warn(format_message(code, detail))

    def ask(self, prompt: str, default: Optional[str] = None, secret: bool = False) -> Optional[str]:
        """
        Ask for one value. Returns None when the operator cancels
        (empty answer with no default, EOF or Ctrl+C).
        """
        if not self.interactive:
            return None
        hint = f" [{default}]" if default and not secret else ""
        try:
            if secret:
                value = getpass.getpass(f"  {prompt}: ")
            else:
                value = input(f"  {prompt}{hint}: ")
        except (EOFError, KeyboardInterrupt):
            print()
            return None
        value = value.strip()
        if not value:
            return default or None
        return value
