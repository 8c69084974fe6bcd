"""Operator questions asked mid-run.

The orchestrator never picks a silent default at a decision point; it asks
through a Prompter. The CLI uses the Rich console; --yes and tests supply
answers up front.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Iterable, Optional

from rich.console import Console
from rich.prompt import Confirm


class Prompter(ABC):
    """Interface for yes/no questions asked while the event loop is running."""

    @abstractmethod
    async def confirm(self, question: str) -> bool:
        """Ask `question` and return the operator's answer."""
        ...


class ConsolePrompter(Prompter):
    """Asks on the terminal without blocking the event loop.

    The blocking read runs on a daemon thread so signal handlers keep firing
    while the question is open, and an interrupted run can exit without
    waiting for the read to return.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    async def confirm(self, question: str) -> bool:
        loop = asyncio.get_running_loop()
        answer: asyncio.Future = loop.create_future()

        def _deliver(value: Optional[bool], error: Optional[BaseException]) -> None:
            if answer.done():
                return
            if error is not None:
                answer.set_exception(error)
            else:
                answer.set_result(value)

        def _ask() -> None:
            value, error = None, None
            try:
                value = Confirm.ask(question, console=self.console)
            except BaseException as e:
                error = e
            try:
                loop.call_soon_threadsafe(_deliver, value, error)
            except RuntimeError:
                # Loop closed after an interrupt; nobody is waiting
                pass

        threading.Thread(target=_ask, name="maketalk-prompt", daemon=True).start()
        return await answer


class ScriptedPrompter(Prompter):
    """Answers from a fixed script; `default` once the script runs out.

    default=None means an unscripted question is a programming error.
    """

    def __init__(self, answers: Iterable[bool] = (), default: Optional[bool] = None):
        self.answers = deque(answers)
        self.default = default
        self.asked: list[str] = []

    async def confirm(self, question: str) -> bool:
        self.asked.append(question)
        if self.answers:
            return self.answers.popleft()
        if self.default is None:
            raise RuntimeError(f"Unexpected question: {question}")
        return self.default
