from __future__ import annotations

import logging
from functools import lru_cache
from typing import Sequence

import numpy as np

from rollcall.core.config import get_settings
from rollcall.core.exceptions import DecodeError, DimensionMismatch, ValidationError
from rollcall.core.types import EnrolledIdentity, MatchResult
from rollcall.services.codec import decode

logger = logging.getLogger("rollcall.matcher")

Candidate = tuple[EnrolledIdentity, "np.ndarray | Sequence[float] | str"]


def as_probe(values: Sequence[float] | np.ndarray) -> np.ndarray:
    vector = np.asarray(values, dtype=np.float64)
    if vector.ndim != 1 or vector.size == 0:
        raise ValidationError("Face descriptor must be a non-empty 1D vector.")
    if not np.all(np.isfinite(vector)):
        raise ValidationError("Face descriptor contains non-finite values.")
    return vector


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatch(a.shape[0], b.shape[0])
    return float(np.linalg.norm(a - b))


class DescriptorMatcher:
    def __init__(self, threshold: float = 0.6) -> None:
        self.threshold = threshold

    @staticmethod
    def _load(raw) -> np.ndarray:
        if isinstance(raw, str):
            return decode(raw)
        try:
            vector = np.asarray(raw, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"Descriptor is not numeric: {exc}") from exc
        if not np.all(np.isfinite(vector)):
            raise DecodeError("Descriptor contains non-finite values.")
        return vector

    def _comparable(self, probe: np.ndarray, candidates: Sequence[Candidate]):
        vectors: list[np.ndarray] = []
        identities: list[EnrolledIdentity] = []
        skipped = 0
        for identity, raw in candidates:
            try:
                vector = self._load(raw)
                if vector.ndim != 1 or vector.shape[0] != probe.shape[0]:
                    raise DimensionMismatch(probe.shape[0], int(vector.size))
            except DecodeError as exc:
                logger.warning("Skipping %s: undecodable descriptor (%s)", identity.identity_id, exc)
                skipped += 1
                continue
            except DimensionMismatch as exc:
                logger.warning("Skipping %s: %s", identity.identity_id, exc)
                skipped += 1
                continue
            vectors.append(vector)
            identities.append(identity)
        return vectors, identities, skipped

    def match(self, probe: Sequence[float] | np.ndarray, candidates: Sequence[Candidate]) -> MatchResult:
        query = as_probe(probe)
        vectors, identities, skipped = self._comparable(query, candidates)
        if not vectors:
            return MatchResult(False, None, None, None, compared=0, skipped=skipped)

        distances = np.linalg.norm(np.vstack(vectors) - query, axis=1)
        # argmin returns the first index on ties, so earlier candidates win.
        idx = int(np.argmin(distances))
        best = float(distances[idx])

        if best < self.threshold:
            logger.info("Best match %s at distance %.4f", identities[idx].display_name, best)
            return MatchResult(True, identities[idx], 1.0 - best, best, compared=len(vectors), skipped=skipped)

        logger.info("No face match under threshold %.2f (best %.4f)", self.threshold, best)
        return MatchResult(False, None, None, best, compared=len(vectors), skipped=skipped)


@lru_cache(maxsize=1)
def get_matcher() -> DescriptorMatcher:
    settings = get_settings()
    return DescriptorMatcher(threshold=settings.match_threshold)
