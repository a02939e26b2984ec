"""
Client-side queue for activities recorded without connectivity.

Entries are kept in a JSON file and replayed one by one, in the order they
were queued, once the device is back online. There is no retry schedule:
an entry that fails stays queued for the next flush.
"""
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Callable, List

import requests

logger = logging.getLogger(__name__)

class OfflineQueue:
    def __init__(self, path: str):
        self.path = path
        self._flushing = False
        self._entries = self._load()

    def _load(self) -> List[dict]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                entries = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read offline queue %s: %s", self.path, e)
            return []
        return entries if isinstance(entries, list) else []

    def _save(self):
        if not self._entries:
            if os.path.exists(self.path):
                os.remove(self.path)
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._entries, f)

    def __len__(self):
        return len(self._entries)

    @property
    def entries(self) -> List[dict]:
        return list(self._entries)

    def enqueue(self, data: dict) -> dict:
        entry = {
            "id": str(uuid.uuid4()),
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self._entries.append(entry)
        self._save()
        return entry

    def flush(self, send: Callable[[dict], bool]) -> int:
        """
        Replays queued entries through `send` and returns how many synced.
        Calls made while a flush is already running return 0.
        """
        if not self._entries or self._flushing:
            return 0

        self._flushing = True
        synced = 0
        remaining = []
        try:
            for entry in self._entries:
                try:
                    ok = send(entry)
                except Exception as e:
                    logger.warning("Sync error for entry %s: %s", entry.get("id"), e)
                    ok = False
                if ok:
                    synced += 1
                else:
                    remaining.append(entry)
        finally:
            self._entries = remaining
            self._save()
            self._flushing = False

        logger.info("Offline queue flushed: %d synced, %d still queued", synced, len(remaining))
        return synced

class ApiSender:
    """
    Sends one queued entry to the AgriLog sync endpoint.
    """
    def __init__(self, base_url: str, token: str, timeout: float = 30):
        self.url = base_url.rstrip("/") + "/sync/activities"
        self.session = requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {token}"})
        self.timeout = timeout

    def __call__(self, entry: dict) -> bool:
        response = self.session.post(self.url, json={"entries": [entry]}, timeout=self.timeout)
        if response.status_code != 200:
            logger.warning("Sync endpoint answered %s", response.status_code)
            return False
        return entry["id"] in response.json().get("synced", [])
