import logging
from typing import Any, Dict, Tuple

from ..models import SourceQuery

logger = logging.getLogger(__name__)


class SourceAdapter:
    """One external provider behind a uniform ``fetch(query)`` contract.

    ``fields`` names the bundle fields the adapter owns. ``fetch`` returns a
    provider-specific payload or raises; ``split`` maps that payload onto
    the owned fields. ``fetch`` may be a plain function (run on a worker
    thread) or a coroutine function (awaited on the loop).
    """

    name: str = "source"
    fields: Tuple[str, ...] = ()

    def fetch(self, query: SourceQuery) -> Any:
        raise NotImplementedError

    def split(self, payload: Any) -> Dict[str, Any]:
        return {self.fields[0]: payload}

    def __repr__(self):
        return f"<{type(self).__name__} {self.name} -> {', '.join(self.fields)}>"
