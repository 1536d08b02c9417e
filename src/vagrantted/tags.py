from typing import NamedTuple

from .errors import InvalidTag

SEPARATOR = ":"


class MachineTag(NamedTuple):
    machine: str
    snapshot: str

    @classmethod
    def parse(cls, text: str) -> "MachineTag":
        """Split ``"<machine>:<snapshot>"`` into its two parts.

        Names containing the separator are not supported.
        """
        machine, sep, snapshot = text.partition(SEPARATOR)
        if not sep:
            raise InvalidTag(text, f"missing '{SEPARATOR}' separator")
        if not machine:
            raise InvalidTag(text, "machine name is empty")
        if not snapshot:
            raise InvalidTag(text, "snapshot name is empty")
        if SEPARATOR in snapshot:
            raise InvalidTag(text, f"snapshot name contains '{SEPARATOR}'")
        return cls(machine, snapshot)

    def __str__(self) -> str:
        return f"{self.machine}{SEPARATOR}{self.snapshot}"
