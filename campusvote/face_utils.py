# campusvote/face_utils.py
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence

import numpy as np

from .config import FACE_THRESHOLD, VERIFY_MIN_MATCHES

logger = logging.getLogger(__name__)


class AttemptDelta(str, Enum):
    INCREMENT = "increment"
    RESET = "reset"


@dataclass(frozen=True)
class MatchResult:
    success: bool
    matched_count: int
    attempt_delta: AttemptDelta


def to_descriptor(value: Any) -> Optional[np.ndarray]:
    """
    Converts a descriptor payload (list of numbers / numpy array) to a 1-D float64 array.
    Returns None if it is missing, empty, not numeric or contains NaN/inf.
    Numeric strings and booleans are rejected rather than coerced.
    """
    if value is None:
        return None
    try:
        raw = np.asarray(value)
    except (TypeError, ValueError):
        return None
    # signed, unsigned or float only
    if raw.dtype.kind not in "iuf":
        return None
    arr = raw.astype(np.float64)
    if arr.ndim != 1 or arr.size == 0:
        return None
    if not np.all(np.isfinite(arr)):
        return None
    return arr


def euclidean_distance(a: Any, b: Any) -> float:
    """
    Euclidean distance between two descriptors.
    Descriptors of different length (or malformed ones) are infinitely far apart.
    """
    va = to_descriptor(a)
    vb = to_descriptor(b)
    if va is None or vb is None or va.shape != vb.shape:
        return math.inf
    return float(np.linalg.norm(va - vb))


def verify(
    candidate: Any,
    enrolled: Optional[Sequence[Any]],
    threshold: float = FACE_THRESHOLD,
    min_matches: int = VERIFY_MIN_MATCHES,
) -> MatchResult:
    """
    Decide whether `candidate` belongs to the identity behind `enrolled`.

    An enrolled descriptor counts as a match when its distance to the candidate is
    strictly below `threshold`. Success needs at least `min_matches` of them.
    Never raises: a bad candidate or an empty enrollment is a plain failure.
    The caller persists `attempt_delta` against the student's counter.
    """
    failed = MatchResult(success=False, matched_count=0, attempt_delta=AttemptDelta.INCREMENT)

    probe = to_descriptor(candidate)
    if probe is None:
        logger.info("Face verification rejected: missing or malformed descriptor")
        return failed
    if enrolled is None or len(enrolled) == 0:
        logger.info("Face verification rejected: no enrolled descriptors")
        return failed

    matched = 0
    for stored in enrolled:
        if euclidean_distance(probe, stored) < threshold:
            matched += 1

    success = matched >= max(int(min_matches), 1)
    logger.info(f"Face verification: {matched}/{len(enrolled)} descriptors matched, success={success}")
    return MatchResult(
        success=success,
        matched_count=matched,
        attempt_delta=AttemptDelta.RESET if success else AttemptDelta.INCREMENT,
    )


def apply_attempt_delta(current: Optional[int], delta: AttemptDelta) -> int:
    if delta == AttemptDelta.RESET:
        return 0
    return max(int(current or 0), 0) + 1


def empty_face_profile(now: datetime) -> Dict[str, Any]:
    return {"descriptors": [], "lastUpdated": now, "verificationAttempts": 0}


def append_descriptor(profile: Optional[Dict[str, Any]], descriptor: Any, now: datetime) -> Dict[str, Any]:
    """
    Returns a copy of `profile` with `descriptor` appended after the existing ones.
    Raises ValueError for a malformed descriptor so it never reaches storage.
    """
    arr = to_descriptor(descriptor)
    if arr is None:
        raise ValueError("Invalid face data provided")

    base = profile or empty_face_profile(now)
    updated = dict(base)
    updated["descriptors"] = list(base.get("descriptors") or []) + [arr.tolist()]
    updated["lastUpdated"] = now
    updated.setdefault("verificationAttempts", 0)
    return updated
