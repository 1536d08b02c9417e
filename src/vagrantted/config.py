from os import getenv
from typing import Literal

from pydantic import BaseModel, Field, field_validator

Platform = Literal["darwin", "linux", "win32"]


def _vms_from_env() -> list[str]:
    raw = getenv("TED_VMS", "")
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


class ContextOptions(BaseModel, frozen=True):
    gui: bool = Field(
        default=False,
        description="Ask the Vagrantfile to boot the machine with a visible console.",
    )
    scripts_dir: str = Field(
        default="../scripts",
        description="Root of the build/ and install/ scripts used by install().",
    )
    install_snapshot: str | None = Field(
        default=None,
        description="Snapshot to take after install(). Disabled when None.",
    )
    step_timeout: float | None = Field(
        default=None,
        description="Seconds each chained step may run before failing with TimeoutError.",
    )

    @field_validator("step_timeout")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError(f"timeout must be positive, got {value}")
        return value


class DriverConfig(BaseModel, frozen=True):
    vagrant_root: str = Field(default_factory=lambda: getenv("TED_VAGRANT_ROOT", "."))
    platforms: dict[str, Platform] = Field(
        default_factory=dict,
        description="Guest platform per machine name. Machines not listed are linux.",
    )
    command_timeout: float | None = None

    @field_validator("command_timeout")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError(f"timeout must be positive, got {value}")
        return value

    def platform_for(self, machine_name: str) -> str:
        return self.platforms.get(machine_name, "linux")


class TedConfig(BaseModel, frozen=True):
    ref: str = Field(default_factory=lambda: getenv("TED_REF", "HEAD"))
    vms: list[str] = Field(default_factory=_vms_from_env)


class TedTarget(BaseModel, frozen=True):
    tag: str
    ref: str

    @property
    def title(self) -> str:
        return f"{self.tag}#{self.ref}"
