"""Error types raised by the component container, binder and rebinder."""

from __future__ import annotations

from typing import Any, Mapping, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from liveconfig.context.rebinder import RebindReport


class ConfigurationError(Exception):
    """Base class for configuration binding and rebinding errors."""


class ComponentNotFoundError(LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"No component named {name!r} is defined")
        self.name = name


class BindingError(ConfigurationError):
    """
    Raised when environment values fail validation against a component's
    configuration schema. `errors` is the pydantic error list.
    """

    def __init__(self, name: str, errors: Sequence[Mapping[str, Any]] | None = None, *, message: str | None = None):
        self.name = name
        self.errors = [dict(e) for e in (errors or [])]
        detail = message or "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}" for e in self.errors
        )
        super().__init__(f"Could not bind configuration for {name!r}: {detail}")


class RebindError(ConfigurationError):
    """
    Raised after a rebind pass in which one or more components failed.

    Healthy components were still rebound; `report` describes the whole pass.
    """

    def __init__(self, failures: Mapping[str, Exception], report: "RebindReport"):
        self.failures = dict(failures)
        self.report = report
        names = ", ".join(sorted(self.failures))
        super().__init__(f"Rebind failed for {len(self.failures)} component(s): {names}")
