from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import combinations
from typing import List, Sequence, Tuple

from .config import DEFAULT_EXCLUSIVE_PAIR

logger = logging.getLogger(__name__)


class ModelSpecError(ValueError):
    """A model specification breaks the mandatory-term or exclusive-pair rules."""


@dataclass(frozen=True)
class ModelSpec:
    """Fixed-effect terms plus a random intercept on group."""

    response: str
    terms: Tuple[str, ...]
    group: str
    omitted: Tuple[str, ...] = ()

    @property
    def formula(self) -> str:
        return f"{self.response} ~ " + " + ".join(self.terms)

    @property
    def label(self) -> str:
        if not self.omitted:
            return "full"
        return " ".join(f"-{term}" for term in self.omitted)

    @property
    def columns(self) -> List[str]:
        return [self.response, *self.terms, self.group]


def validate_spec(
    spec: ModelSpec,
    mandatory: str,
    exclusive_pair: Sequence[str] = DEFAULT_EXCLUSIVE_PAIR,
) -> None:
    """Raise ModelSpecError unless the candidate keeps its grouping and mandatory terms and respects the exclusive pair."""
    if not spec.group:
        raise ModelSpecError(f"{spec.formula}: a random-intercept grouping term is required")
    if spec.group in spec.terms:
        raise ModelSpecError(f"{spec.formula}: grouping term {spec.group!r} cannot also be a fixed effect")
    if mandatory not in spec.terms:
        raise ModelSpecError(f"{spec.formula}: mandatory term {mandatory!r} is missing")
    if len(set(spec.terms)) != len(spec.terms):
        raise ModelSpecError(f"{spec.formula}: duplicated terms")
    a, b = exclusive_pair
    if a in spec.terms and b in spec.terms:
        raise ModelSpecError(f"{spec.formula}: {a!r} and {b!r} may not appear in the same model")


def generate_candidates(
    response: str,
    mandatory: str,
    group: str,
    optional: Sequence[str],
    exclusive_pair: Sequence[str] = DEFAULT_EXCLUSIVE_PAIR,
) -> List[ModelSpec]:
    """Every include/exclude combination of the optional covariates.

    The full model comes first, then all models omitting one covariate, then two,
    and so on; within a level the order follows `optional`. Combinations that
    break the exclusive pair are dropped, so the count is 2**k minus rejections.
    """
    optional = list(optional)
    if mandatory in optional:
        raise ModelSpecError(f"Mandatory term {mandatory!r} cannot also be optional")
    if len(set(optional)) != len(optional):
        raise ModelSpecError(f"Duplicated optional covariates: {optional}")

    specs: List[ModelSpec] = []
    rejected = 0
    for n_omit in range(len(optional) + 1):
        for omitted in combinations(optional, n_omit):
            included = [term for term in optional if term not in omitted]
            spec = ModelSpec(response=response, terms=(mandatory, *included), group=group, omitted=tuple(omitted))
            try:
                validate_spec(spec, mandatory=mandatory, exclusive_pair=exclusive_pair)
            except ModelSpecError as e:
                rejected += 1
                logger.info(f"Skipping candidate: {e}")
                continue
            specs.append(spec)
    logger.info(f"Generated {len(specs)} candidates ({rejected} rejected) from {len(optional)} optional covariates")
    return specs
