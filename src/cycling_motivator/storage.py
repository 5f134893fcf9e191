"""Persistence for profiles and per-user journey state.

Two interchangeable backends share the StateStore interface: a local JSON
file and a hosted Supabase (PostgREST) database. Values are whole state
bundles keyed by user id; the last write wins.
"""

import json
import logging
import os
import random
import time
from pathlib import Path
from threading import Lock

import requests

from cycling_motivator.models import DEFAULT_BUNDLE, Profile

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds


class StorageError(Exception):
    """Raised when the backing store cannot be read or written."""


def new_profile(name: str, photo: str | None = None) -> Profile:
    """Create a profile with a time-based id and a random color."""
    return Profile(
        id=f"user-{int(time.time() * 1000)}",
        name=name,
        color=f"hsl({random.randint(0, 359)}, 70%, 50%)",
        photo=photo,
    )


class StateStore:
    """Key-value persistence for profiles and user state bundles."""

    def list_profiles(self) -> list[Profile]:
        raise NotImplementedError

    def save_profiles(self, profiles: list[Profile]) -> None:
        raise NotImplementedError

    def load_user_state(self, user_id: str) -> dict:
        """Return the stored {route, progress, appState} bundle, or defaults."""
        raise NotImplementedError

    def save_user_state(self, user_id: str, bundle: dict) -> None:
        raise NotImplementedError

    def create_profile(self, name: str, photo: str | None = None) -> Profile:
        """Create a profile and append it to the stored list."""
        profile = new_profile(name, photo)
        self.save_profiles(self.list_profiles() + [profile])
        return profile


class JsonFileStore(StateStore):
    """Store everything in one JSON document: {"profiles": [...], "userData": {...}}.

    Every read-modify-write holds the store lock, and the file is replaced
    atomically, so concurrent writers never interleave or leave a partial file.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.lock = Lock()

    def _read_db(self) -> dict:
        """Load the database file. A missing or unreadable file reads as empty."""
        if not self.path.exists():
            return {"profiles": [], "userData": {}}
        try:
            with self.path.open() as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not read %s, starting empty: %s", self.path, e)
            return {"profiles": [], "userData": {}}
        if not isinstance(data, dict):
            logger.warning("Could not read %s, starting empty: not a JSON object", self.path)
            return {"profiles": [], "userData": {}}
        if not isinstance(data.get("profiles"), list):
            data["profiles"] = []
        if not isinstance(data.get("userData"), dict):
            data["userData"] = {}
        return data

    def _write_db(self, data: dict) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e

    def _profiles(self, db: dict) -> list[Profile]:
        try:
            return [Profile.from_dict(p) for p in db["profiles"]]
        except ValueError as e:
            raise StorageError(f"Invalid profile in {self.path}: {e}") from e

    def list_profiles(self) -> list[Profile]:
        with self.lock:
            return self._profiles(self._read_db())

    def save_profiles(self, profiles: list[Profile]) -> None:
        with self.lock:
            db = self._read_db()
            db["profiles"] = [p.to_dict() for p in profiles]
            self._write_db(db)

    def create_profile(self, name: str, photo: str | None = None) -> Profile:
        profile = new_profile(name, photo)
        with self.lock:
            db = self._read_db()
            db["profiles"] = [p.to_dict() for p in self._profiles(db)] + [profile.to_dict()]
            self._write_db(db)
        return profile

    def load_user_state(self, user_id: str) -> dict:
        with self.lock:
            return self._read_db()["userData"].get(user_id) or dict(DEFAULT_BUNDLE)

    def save_user_state(self, user_id: str, bundle: dict) -> None:
        with self.lock:
            db = self._read_db()
            db["userData"][user_id] = bundle
            self._write_db(db)


class SupabaseStore(StateStore):
    """Hosted store using Supabase's PostgREST API.

    Expects two tables:
        profiles(id text primary key, name text, color text, photo text)
        user_state(user_id text primary key, route jsonb, progress jsonb, app_state text)
    """

    def __init__(self, url: str, key: str, timeout: float = REQUEST_TIMEOUT):
        if not url or not key:
            raise ValueError("Supabase URL and key are required")
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        })

    def _request(self, method: str, table: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}/{table}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as e:
            raise StorageError(f"Supabase {method} {table} failed: {e}") from e
        return response

    def _upsert(self, table: str, rows: list[dict]) -> None:
        self._request(
            "POST",
            table,
            json=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def list_profiles(self) -> list[Profile]:
        response = self._request("GET", "profiles", params={"select": "*"})
        try:
            return [Profile.from_dict(p) for p in response.json()]
        except ValueError as e:
            raise StorageError(f"Invalid profiles response: {e}") from e

    def save_profiles(self, profiles: list[Profile]) -> None:
        if profiles:
            self._upsert("profiles", [p.to_dict() for p in profiles])

    def create_profile(self, name: str, photo: str | None = None) -> Profile:
        profile = new_profile(name, photo)
        self._upsert("profiles", [profile.to_dict()])
        return profile

    def load_user_state(self, user_id: str) -> dict:
        response = self._request(
            "GET",
            "user_state",
            params={"select": "*", "user_id": f"eq.{user_id}"},
        )
        try:
            rows = response.json()
        except ValueError as e:
            raise StorageError(f"Invalid user_state response: {e}") from e
        if not rows:
            return dict(DEFAULT_BUNDLE)
        row = rows[0]
        return {
            "route": row.get("route"),
            "progress": row.get("progress"),
            "appState": row.get("app_state") or DEFAULT_BUNDLE["appState"],
        }

    def save_user_state(self, user_id: str, bundle: dict) -> None:
        self._upsert("user_state", [{
            "user_id": user_id,
            "route": bundle.get("route"),
            "progress": bundle.get("progress"),
            "app_state": bundle.get("appState"),
        }])


def make_store(settings: dict) -> StateStore:
    """Build the configured store ("file" or "supabase")."""
    kind = settings.get("store", "file")
    if kind == "supabase":
        return SupabaseStore(settings.get("supabase_url"), settings.get("supabase_key"))
    if kind == "file":
        return JsonFileStore(Path(settings["db_path"]).expanduser())
    raise ValueError(f"Unknown store: {kind}")
