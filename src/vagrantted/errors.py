class TedError(Exception):
    """Base class for every failure raised by vagrant-ted."""


class InvalidTag(TedError, ValueError):
    def __init__(self, tag: str, reason: str):
        super().__init__(f"Invalid machine tag {tag!r}: {reason}")
        self.tag = tag
        self.reason = reason


class NotFound(TedError):
    def __init__(self, kind: str, name: str):
        super().__init__(f"{kind.capitalize()} not found: {name}")
        self.kind = kind
        self.name = name


class UnsupportedPlatform(TedError):
    def __init__(self, platform: str, tag: str | None = None):
        message = f"Platform not implemented: {platform}"
        if tag is not None:
            message += f" ({tag})"
        super().__init__(message)
        self.platform = platform
        self.tag = tag


class DriverError(TedError):
    """A vagrant operation failed.

    When the failure came from a vagrant command, the command line and its
    captured output are kept on the exception.
    """

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class ScriptError(DriverError):
    """A script run on the guest exited nonzero or could not be delivered."""


class ContextClosed(TedError, RuntimeError):
    pass
