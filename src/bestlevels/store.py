"""Frozen records of a selected level set and the artifact that replays it."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import ConfigurationError

ARTIFACT_VERSION = 1


class Sign(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


def _encode_float(value: float) -> Any:
    # JSON has no infinities; keep them as strings
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return value


def _decode_float(value: Any) -> float:
    return float(value)


@dataclass(frozen=True)
class Level:
    """One selected group value with its association sign, score and support."""

    name: str
    sign: Sign
    omega: float
    n: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "sign": self.sign.value, "omega": _encode_float(self.omega), "n": self.n}

    @classmethod
    def from_dict(cls, state: Dict[str, Any]) -> "Level":
        return cls(
            name=str(state["name"]),
            sign=Sign(state["sign"]),
            omega=_decode_float(state["omega"]),
            n=int(state["n"]),
        )


@dataclass(frozen=True)
class SelectedLevelSet:
    """Ordered, immutable set of selected levels, best ranked first."""

    levels: Tuple[Level, ...] = ()
    problem: str = "classification"

    def __post_init__(self) -> None:
        object.__setattr__(self, "levels", tuple(self.levels))
        names = [lvl.name for lvl in self.levels]
        if len(set(names)) != len(names):
            raise ConfigurationError("Level names in a level set must be unique")

    def __len__(self) -> int:
        return len(self.levels)

    def __iter__(self) -> Iterator[Level]:
        return iter(self.levels)

    def __contains__(self, name: object) -> bool:
        return any(lvl.name == name for lvl in self.levels)

    @property
    def names(self) -> List[str]:
        return [lvl.name for lvl in self.levels]

    @property
    def positive(self) -> List[str]:
        return [lvl.name for lvl in self.levels if lvl.sign is Sign.POSITIVE]

    @property
    def negative(self) -> List[str]:
        return [lvl.name for lvl in self.levels if lvl.sign is Sign.NEGATIVE]

    def to_dict(self) -> Dict[str, Any]:
        return {"problem": self.problem, "levels": [lvl.to_dict() for lvl in self.levels]}

    @classmethod
    def from_dict(cls, state: Dict[str, Any]) -> "SelectedLevelSet":
        return cls(
            levels=tuple(Level.from_dict(s) for s in state.get("levels", [])),
            problem=state.get("problem", "classification"),
        )


@dataclass(frozen=True)
class LevelStoreArtifact:
    """A level set frozen together with the metadata needed to validate its reuse.

    The artifact is created by a training run and is never mutated afterwards. Its
    JSON form is stable: serializing the same artifact twice yields identical text.
    """

    level_set: SelectedLevelSet
    groups: str
    outcome: Optional[str] = None
    n_levels: Optional[int] = None
    min_obs: int = 1
    cohesion_weight: Optional[float] = None
    positive_class: Optional[Any] = None
    version: int = field(default=ARTIFACT_VERSION)

    @property
    def names(self) -> List[str]:
        return self.level_set.names

    def validate_groups(self, groups: str) -> None:
        if groups != self.groups:
            raise ConfigurationError(
                f"Stored levels were selected for grouping attribute '{self.groups}', "
                f"not '{groups}'"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "groups": self.groups,
            "outcome": self.outcome,
            "n_levels": self.n_levels,
            "min_obs": self.min_obs,
            "cohesion_weight": self.cohesion_weight,
            "positive_class": self.positive_class,
            "level_set": self.level_set.to_dict(),
        }

    @classmethod
    def from_dict(cls, state: Dict[str, Any]) -> "LevelStoreArtifact":
        version = int(state.get("version", ARTIFACT_VERSION))
        if version > ARTIFACT_VERSION:
            raise ConfigurationError(f"Unsupported level store version {version}")
        return cls(
            level_set=SelectedLevelSet.from_dict(state["level_set"]),
            groups=state["groups"],
            outcome=state.get("outcome"),
            n_levels=state.get("n_levels"),
            min_obs=int(state.get("min_obs", 1)),
            cohesion_weight=state.get("cohesion_weight"),
            positive_class=state.get("positive_class"),
            version=version,
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, text: str) -> "LevelStoreArtifact":
        return cls.from_dict(json.loads(text))
