import json
import logging
from typing import Callable, List, MutableMapping, Optional

from errors import ValidationError
from schemas import Shortlist

logger = logging.getLogger(__name__)

LOCAL_KEY = "househunt_shortlist"

Listener = Callable[[List[str]], None]


class ShortlistSelection:
    """
    The user's not-yet-shared shortlist, persisted as a JSON array under one key
    of a client-side key/value storage.
    """

    def __init__(self, storage: MutableMapping[str, str], key: str = LOCAL_KEY):
        self.storage = storage
        self.key = key
        self._listeners: List[Listener] = []

    def get(self) -> List[str]:
        raw = self.storage.get(self.key)
        if not raw:
            return []
        try:
            ids = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable shortlist selection under %s", self.key)
            return []
        if not isinstance(ids, list):
            return []
        return [str(i) for i in ids]

    def contains(self, prop_id: str) -> bool:
        return prop_id in self.get()

    def add(self, prop_id: str) -> List[str]:
        ids = self.get()
        if prop_id in ids:
            return ids
        ids.append(prop_id)
        return self._save(ids)

    def remove(self, prop_id: str) -> List[str]:
        ids = self.get()
        if prop_id not in ids:
            return ids
        return self._save([i for i in ids if i != prop_id])

    def clear(self) -> List[str]:
        if not self.get():
            return []
        return self._save([])

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def share(self, shortlists, label: Optional[str] = "Shared Shortlist") -> Shortlist:
        ids = self.get()
        if not ids:
            raise ValidationError("Shortlist is empty.")
        return shortlists.create_shortlist(None, ids, label)

    def _save(self, ids: List[str]) -> List[str]:
        self.storage[self.key] = json.dumps(ids)
        for listener in list(self._listeners):
            listener(list(ids))
        return ids
