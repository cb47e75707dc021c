"""
Offline feed fetcher serving iCalendar text from local files.
"""

from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from ..domain.exceptions import FetchError

SAMPLE_FEED = Path(__file__).parent / "mock_calendar.ics"


class MockFeedFetcher:
    """
    Stand-in for ``FeedFetcher`` that reads feeds from disk.

    Each URL maps to a local ``.ics`` file. Unmapped URLs get the bundled
    sample calendar so a page can be previewed without network access.
    """

    def __init__(
        self,
        sources: Optional[Mapping[str, Union[str, Path]]] = None,
        fallback: Optional[Path] = SAMPLE_FEED,
    ):
        self.sources: Dict[str, Path] = {
            url: Path(path) for url, path in (sources or {}).items()
        }
        self.fallback = fallback
        self.requested: list = []

    def fetch(self, url: str) -> str:
        """
        Return the text of the file mapped to ``url``.

        Raises:
            FetchError: If neither a mapped file nor the fallback exists
        """
        self.requested.append(url)
        path = self.sources.get(url, self.fallback)

        if path is None or not path.exists():
            raise FetchError(f"No mock feed available for {url}")

        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise FetchError(f"Could not read mock feed {path}: {e}") from e
