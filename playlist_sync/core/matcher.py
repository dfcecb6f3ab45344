"""
Candidate Matcher

Scores target catalog search results against a source track using rapidfuzz.

score = 0.7 * similarity(candidate title, "{artist} - {title}")
      + 0.3 * similarity(candidate channel, artist)

A candidate is accepted only when its score is strictly above MATCH_THRESHOLD.
"""

from typing import Iterable

from rapidfuzz.distance import Levenshtein

from playlist_sync.core.models import SourceTrack, TargetCandidate

TITLE_WEIGHT = 0.7
CHANNEL_WEIGHT = 0.3
MATCH_THRESHOLD = 0.3


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    return Levenshtein.distance(a, b)


def title_similarity(a: str, b: str) -> float:
    """Case-insensitive (max_len - distance) / max_len; 1.0 for two empty strings."""
    return Levenshtein.normalized_similarity(a.lower(), b.lower())


def score_candidate(candidate: TargetCandidate, track: SourceTrack) -> float:
    title_score = title_similarity(candidate.title, track.query)
    channel_score = title_similarity(candidate.channel, track.artist)
    return title_score * TITLE_WEIGHT + channel_score * CHANNEL_WEIGHT


def is_acceptable(score: float) -> bool:
    return score > MATCH_THRESHOLD


def best_candidate(candidates: Iterable[TargetCandidate],
                   track: SourceTrack) -> tuple[TargetCandidate | None, float]:
    """
    Return the highest scoring candidate and its score.
    Candidates without a video id are ignored; ties keep the earlier result.
    """
    best = None
    best_score = 0.0
    for candidate in candidates:
        if not candidate.video_id:
            continue
        score = score_candidate(candidate, track)
        if score > best_score:
            best, best_score = candidate, score
    return best, best_score
