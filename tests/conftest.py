import sys
from pathlib import Path

import pytest

# Ensure root path is available for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from prismo.models import SourceProvider, TorrentCandidate  # noqa: E402


@pytest.fixture
def make_candidate():
    def _make(
        name: str = "Example Movie 2021 1080p",
        info_hash: str = "a" * 40,
        provider: SourceProvider = SourceProvider.APIBAY,
        seeders: int = 10,
        leechers: int = 0,
        **kwargs,
    ) -> TorrentCandidate:
        return TorrentCandidate(
            name=name,
            info_hash=info_hash,
            source_provider=provider,
            seeders=seeders,
            leechers=leechers,
            **kwargs,
        )

    return _make
