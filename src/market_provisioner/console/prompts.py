"""
Console prompts.

Handlers ask for input through a Prompter so they can be driven by a script
in tests and by stdin in the real console.
"""

from __future__ import annotations

from typing import Callable, Protocol, Sequence


class Prompter(Protocol):
    def ask(self, message: str) -> str:
        """Return free text typed by the operator."""

    def choose(self, message: str, choices: Sequence[str]) -> str:
        """Return one of choices."""


class StdinPrompter:
    """Prompter backed by input and print. EOF propagates so the console can stop."""

    def __init__(
        self,
        read: Callable[[str], str] = input,
        write: Callable[[str], None] = print,
    ) -> None:
        self._read = read
        self._write = write

    def ask(self, message: str) -> str:
        return self._read(f"{message} ").strip()

    def choose(self, message: str, choices: Sequence[str]) -> str:
        if not choices:
            raise ValueError("nothing to choose from")

        self._write(message)
        for idx, choice in enumerate(choices, start=1):
            self._write(f"  {idx}) {choice}")

        while True:
            answer = self._read("> ").strip()
            # digits are always a menu number, choices can be digit strings too
            if answer.isdigit():
                if 1 <= int(answer) <= len(choices):
                    return choices[int(answer) - 1]
            elif answer in choices:
                return answer
            self._write(f"please pick a number between 1 and {len(choices)}")
