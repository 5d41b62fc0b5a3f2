# prismo/services/filtering.py

import re

from ..config import (
    CAM_PENALTY,
    HEVC_BONUS,
    LEECHER_WEIGHT,
    NSFW_CATEGORIES_APIBAY,
    NSFW_KEYWORDS,
    PROVIDER_TRUST_BONUS,
    RESOLUTION_BONUSES,
    SAMPLE_PENALTY,
)
from ..models import SourceProvider, TorrentCandidate
from ..utils import parse_codec, parse_resolution

_CAM_PATTERN = re.compile(
    r"\b(?:cam|camrip|hdcam|ts|hdts|telesync|tc|telecine)\b"
)
_SAMPLE_PATTERN = re.compile(r"\bsample\b")


def is_nsfw(candidate: TorrentCandidate) -> bool:
    """
    True when the name carries a blocked keyword, or when a general-purpose
    provider filed the torrent under an adult category.
    """
    name_lower = candidate.name.lower()
    if any(keyword in name_lower for keyword in NSFW_KEYWORDS):
        return True

    if candidate.source_provider == SourceProvider.APIBAY and candidate.category:
        category_lower = candidate.category.lower()
        if any(category in category_lower for category in NSFW_CATEGORIES_APIBAY):
            return True

    return False


def score_candidate(candidate: TorrentCandidate) -> float:
    """
    Scores a candidate from its swarm health, provider trust and the release
    tags in its name. All terms are additive.
    """
    score = candidate.seeders + LEECHER_WEIGHT * candidate.leechers
    score += PROVIDER_TRUST_BONUS.get(candidate.source_provider.value, 0)

    # Normalise separators so "Movie.2021.1080p.x265" tokenises like words.
    name = re.sub(r"[._\-\[\]()]+", " ", candidate.name.lower())

    score += RESOLUTION_BONUSES.get(parse_resolution(name), 0)
    if parse_codec(name) == "x265":
        score += HEVC_BONUS
    if _CAM_PATTERN.search(name):
        score -= CAM_PENALTY
    if _SAMPLE_PATTERN.search(name):
        score -= SAMPLE_PENALTY

    return score
