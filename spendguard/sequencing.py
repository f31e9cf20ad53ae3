"""Latest-request-wins bookkeeping for overlapping fetches."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field


@dataclass
class FetchSequencer:
    """Hands out increasing generation tokens and accepts only the newest result.

    A result is applied only if its token is at least as new as the last one
    accepted and no newer fetch has been dispatched since. Within one Streamlit
    script run dispatch and accept are back to back; a stale token only shows up
    when an older run outlives the run that superseded it, since Streamlit
    otherwise stops the older run first.
    """

    _counter: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)
    latest_dispatched: int = 0
    latest_accepted: int = 0

    def next_token(self) -> int:
        self.latest_dispatched = next(self._counter)
        return self.latest_dispatched

    def is_current(self, token: int) -> bool:
        return token == self.latest_dispatched and token >= self.latest_accepted

    def accept(self, token: int) -> bool:
        """Record ``token`` as applied; stale tokens are rejected and leave state untouched."""
        if not self.is_current(token):
            return False
        self.latest_accepted = token
        return True
