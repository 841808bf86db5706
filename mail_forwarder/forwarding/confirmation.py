"""Operator confirmation before a live run changes anything."""

from abc import ABC, abstractmethod
from typing import Callable

from mail_forwarder.logging import get_logger

logger = get_logger(__name__, component="confirmation")


class ConfirmationProvider(ABC):
    """Asks whether a live run may proceed."""

    @abstractmethod
    def confirm(self, prompt: str) -> bool:
        """Return True to proceed, False to cancel the run."""


class ConsoleConfirmation(ConfirmationProvider):
    """Blocking yes/no question on the console.

    Only ``y`` or ``yes`` (any case) proceeds. End of input counts as no.
    """

    def __init__(self, input_func: Callable[[str], str] = input) -> None:
        self.input_func = input_func

    def confirm(self, prompt: str) -> bool:
        try:
            answer = self.input_func(f"{prompt} [y/N]: ")
        except EOFError:
            logger.info(
                "No answer on input; treating as declined",
                extra={"event": "confirmation.eof"},
            )
            return False
        return answer.strip().lower() in ("y", "yes")


class AutoConfirmation(ConfirmationProvider):
    """Fixed answer, used for ``--yes`` and in tests."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer
        self.prompts = []

    def confirm(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.answer
