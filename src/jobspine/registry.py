"""Job Registry - name → job definition lookup.

The registry is built once, at engine setup, from an ordered sequence of
definitions and is read-only afterwards. Both the enqueue path and the claim
loop resolve job names through it.

ARCHITECTURE
────────────
::

    JobRegistry
      ├── .register(definition)  ─ validate + store (fails on duplicates)
      ├── .lookup(name)          ─ definition or None
      ├── .get(name)             ─ definition or JobNotFoundError
      ├── .names()               ─ registered names, in registration order
      └── .schedulable()         ─ definitions with a recurring schedule

Definitions may be given as :class:`JobDefinition` instances or as plain
mappings with the same keys::

    {
        "name": "send-email",
        "handler": send_email,
        "options": {"priority": Priority.MEDIUM, "timeout_ms": 300_000},
        "schedule": "every minute",
    }
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from jobspine.errors import ConfigurationError, JobNotFoundError
from jobspine.models import Priority


class BackoffType(str, Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class Backoff(BaseModel):
    """Delay policy applied by the backing queue between attempts."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    delay_ms: int = Field(default=0, ge=0)
    type: BackoffType = BackoffType.FIXED

    def delay_for(self, attempts_made: int) -> int:
        """Delay in ms before the attempt that follows *attempts_made* failures."""
        if self.type is BackoffType.EXPONENTIAL:
            return self.delay_ms * (2 ** max(attempts_made - 1, 0))
        return self.delay_ms


class JobOptions(BaseModel):
    """Per-definition queue options."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    priority: int = Field(default=Priority.MEDIUM, ge=1)
    timeout_ms: int | None = Field(default=None, ge=0)
    attempts: int = Field(default=1, ge=1)
    backoff: Backoff | None = None

    def to_queue_options(self) -> dict[str, Any]:
        """Options in the shape handed to ``QueueBackend.submit``."""
        return self.model_dump(exclude_none=True, mode="json")


@dataclass(frozen=True)
class JobDefinition:
    """Static registration of a job name to its handler and policy."""

    name: str
    handler: Callable[..., Any]
    options: JobOptions = field(default_factory=JobOptions)
    schedule: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> JobDefinition:
        """Build a definition from a configuration mapping.

        Raises:
            ConfigurationError: If required keys are missing or options are invalid.
        """
        name = raw.get("name")
        handler = raw.get("handler")
        _check_identity(name, handler)
        return cls(
            name=name,
            handler=handler,
            options=_coerce_options(name, raw.get("options")),
            schedule=raw.get("schedule") or None,
        )

    @property
    def timeout_ms(self) -> int | None:
        return self.options.timeout_ms or None


def _check_identity(name: Any, handler: Any) -> None:
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError("The job needs a unique name")
    if handler is None:
        raise ConfigurationError(f"The job {name} needs a handler function").with_context(job_name=name)
    if not callable(handler):
        raise ConfigurationError(f"The handler of job {name} is not callable").with_context(job_name=name)


def _coerce_options(name: str, options: Any) -> JobOptions:
    if options is None:
        return JobOptions()
    if isinstance(options, JobOptions):
        return options
    try:
        return JobOptions.model_validate(options)
    except ValidationError as e:
        raise ConfigurationError(
            f"The job {name} has invalid options",
            cause=e,
        ).with_context(job_name=name) from e


def _check_schedule(name: str, schedule: Any) -> None:
    if not schedule:
        return
    from jobspine.scheduling.triggers import resolve_schedule

    if not isinstance(schedule, str):
        raise ConfigurationError(f"The schedule of job {name} must be a string").with_context(job_name=name)
    try:
        resolve_schedule(schedule)
    except ConfigurationError as e:
        e.with_context(job_name=name)
        raise


def coerce_definition(raw: JobDefinition | Mapping[str, Any]) -> JobDefinition:
    """Validate a definition given as a dataclass or a mapping."""
    if isinstance(raw, JobDefinition):
        _check_identity(raw.name, raw.handler)
        _check_schedule(raw.name, raw.schedule)
        if not isinstance(raw.options, JobOptions):
            return JobDefinition(
                name=raw.name,
                handler=raw.handler,
                options=_coerce_options(raw.name, raw.options),
                schedule=raw.schedule,
            )
        return raw
    if isinstance(raw, Mapping):
        definition = JobDefinition.from_mapping(raw)
        _check_schedule(definition.name, definition.schedule)
        return definition
    raise ConfigurationError(f"Unsupported job definition type: {type(raw).__name__}")


class JobRegistry:
    """Read-only-after-setup registry of job definitions.

    Example:
        >>> registry = JobRegistry([{"name": "echo", "handler": echo}])
        >>> registry.lookup("echo").name
        'echo'
        >>> registry.lookup("missing") is None
        True
    """

    def __init__(self, definitions: Iterable[JobDefinition | Mapping[str, Any]] = ()):
        self._definitions: dict[str, JobDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: JobDefinition | Mapping[str, Any]) -> JobDefinition:
        """Validate and store a definition.

        Raises:
            ConfigurationError: If the definition is malformed or its name is
                already registered.
        """
        validated = coerce_definition(definition)
        if validated.name in self._definitions:
            raise ConfigurationError(
                f"A job named {validated.name} is already registered"
            ).with_context(job_name=validated.name)
        self._definitions[validated.name] = validated
        return validated

    def lookup(self, name: str | None) -> JobDefinition | None:
        """Return the definition for *name*, or None if not registered."""
        if name is None:
            return None
        return self._definitions.get(name)

    def get(self, name: str) -> JobDefinition:
        """Return the definition for *name*.

        Raises:
            JobNotFoundError: If no definition is registered under *name*.
        """
        definition = self.lookup(name)
        if definition is None:
            raise JobNotFoundError(name)
        return definition

    def names(self) -> list[str]:
        return list(self._definitions)

    def schedulable(self) -> list[JobDefinition]:
        """Definitions with a non-empty schedule, in registration order."""
        return [d for d in self._definitions.values() if d.schedule]

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def __iter__(self) -> Iterator[JobDefinition]:
        return iter(self._definitions.values())
