from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from chatrouter.schemas.decision import Action, Command, Decision


@dataclass(frozen=True)
class CommandMatch:
    """Deterministic matcher hit: the command and its trailing argument tokens."""

    command: Command
    args: Tuple[str, ...] = ()
    alias: str = ""
    min_args: int = 0

    @property
    def has_required_args(self) -> bool:
        return len(self.args) >= self.min_args


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    PARSE_ERROR = "parse_error"
    TRANSPORT_ERROR = "transport_error"


@dataclass
class ProviderAttempt:
    """Diagnostic record of one provider call inside the chain."""

    provider_id: str
    latency_ms: float
    outcome: AttemptOutcome
    error: Optional[str] = None


@dataclass
class ChainResult:
    """Value produced by the first successful provider, plus every attempt made."""

    value: Optional[Any] = None
    attempts: List[ProviderAttempt] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.value is not None


@dataclass
class Analysis:
    decision: Decision
    attempts: List[ProviderAttempt] = field(default_factory=list)


RouteTarget = Union[Action, Command]


@dataclass
class DispatchOutcome:
    """What the dispatcher did with one resolved message."""

    target: RouteTarget
    handler: str
    succeeded: bool = True
    error: Optional[str] = None
