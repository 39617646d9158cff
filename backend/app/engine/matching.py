"""Coaching-style fit score.

For each client style the client declared, the contribution is the highest
weight among mappings that land on one of the trainer's styles (any matching
style earns that credit; weights are not summed). The score is the mean of
the contributions over all declared client styles, so a style with no
matching edge pulls the score down.
"""

import enum
import uuid
from dataclasses import dataclass, field
from typing import Iterable


class MappingType(str, enum.Enum):
    primary = "primary"
    secondary = "secondary"
    tertiary = "tertiary"


DEFAULT_WEIGHTS: dict[MappingType, int] = {
    MappingType.primary: 100,
    MappingType.secondary: 60,
    MappingType.tertiary: 30,
}

MIN_WEIGHT = 0
MAX_WEIGHT = 100


@dataclass(frozen=True)
class MappingEdge:
    client_style_id: uuid.UUID
    trainer_style_id: uuid.UUID
    weight: int
    mapping_type: MappingType = MappingType.primary


@dataclass(frozen=True)
class Contribution:
    client_style_id: uuid.UUID
    weight: int
    edge: MappingEdge | None = None


@dataclass
class MatchResult:
    score: float
    contributions: list[Contribution] = field(default_factory=list)
    unmapped_client_styles: list[uuid.UUID] = field(default_factory=list)

    @property
    def contributing_edges(self) -> list[MappingEdge]:
        return [c.edge for c in self.contributions if c.edge is not None]


def default_weight(mapping_type: MappingType) -> int:
    return DEFAULT_WEIGHTS[mapping_type]


def _clamp(weight: int) -> int:
    return max(MIN_WEIGHT, min(MAX_WEIGHT, weight))


def match_score(
    client_style_ids: Iterable[uuid.UUID],
    trainer_style_ids: Iterable[uuid.UUID],
    mappings: Iterable[MappingEdge],
) -> MatchResult:
    """Score how well a trainer's styles fit a client's declared styles (0-100)."""
    client_styles = sorted(set(client_style_ids), key=str)
    trainer_styles = set(trainer_style_ids)
    if not client_styles:
        return MatchResult(score=0.0)

    edges_by_client: dict[uuid.UUID, list[MappingEdge]] = {}
    for edge in mappings:
        edges_by_client.setdefault(edge.client_style_id, []).append(edge)

    contributions: list[Contribution] = []
    unmapped: list[uuid.UUID] = []
    for client_style_id in client_styles:
        edges = edges_by_client.get(client_style_id, [])
        if not edges:
            unmapped.append(client_style_id)
        best: MappingEdge | None = None
        for edge in edges:
            if edge.trainer_style_id not in trainer_styles:
                continue
            if best is None or _clamp(edge.weight) > _clamp(best.weight):
                best = edge
        weight = _clamp(best.weight) if best is not None else 0
        contributions.append(Contribution(client_style_id, weight, best))

    score = sum(c.weight for c in contributions) / len(client_styles)
    return MatchResult(
        score=round(score, 2),
        contributions=contributions,
        unmapped_client_styles=unmapped,
    )


def unmapped_trainer_styles(
    trainer_style_ids: Iterable[uuid.UUID],
    mappings: Iterable[MappingEdge],
) -> list[uuid.UUID]:
    """Trainer styles no mapping points at; they never earn credit."""
    mapped = {edge.trainer_style_id for edge in mappings}
    return sorted((s for s in set(trainer_style_ids) if s not in mapped), key=str)
