"""Deployment settings from environment variables and the categories YAML."""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from lovesignal.domain import DEFAULT_SIGNAL_CATEGORIES
from lovesignal.domain.love_index import BOUNDED_GROWTH, LOVE_INDEX_POLICIES

STORE_NEO4J = "neo4j"
STORE_MEMORY = "memory"


def _repo_root() -> Path:
    """Return repo root (parent of src)."""
    return Path(__file__).resolve().parent.parent.parent.parent


def get_categories_path() -> Path:
    """Return path to the categories YAML (SIGNAL_CATEGORIES_PATH env or config/signal_categories.yaml)."""
    default = _repo_root() / "config" / "signal_categories.yaml"
    path = os.environ.get("SIGNAL_CATEGORIES_PATH", "").strip()
    if path:
        return Path(path).resolve()
    return default


def load_categories(path: Path | None = None) -> tuple[str, ...]:
    """Load and validate the category list. Falls back to the built-in set when no file exists."""
    if path is None:
        path = get_categories_path()
    if not path.exists():
        return DEFAULT_SIGNAL_CATEGORIES
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict) or not isinstance(data.get("categories"), list):
        raise ValueError("Categories YAML must be a dict with a 'categories' list")
    categories = [str(c).strip() for c in data["categories"] if c is not None]
    if not categories or any(not c for c in categories):
        raise ValueError("Categories must be a non-empty list of non-empty names")
    if len(set(categories)) != len(categories):
        raise ValueError("Categories must be unique")
    return tuple(categories)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    store_backend: str = STORE_NEO4J
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "password"
    love_index_policy: str = BOUNDED_GROWTH
    allow_signal_edits: bool = True
    categories: tuple[str, ...] = DEFAULT_SIGNAL_CATEGORIES


def load_settings() -> Settings:
    """Read settings from the environment. Call load_dotenv first if using a .env file."""
    backend = os.environ.get("STORE_BACKEND", STORE_NEO4J).strip().lower()
    if backend not in (STORE_NEO4J, STORE_MEMORY):
        raise ValueError(f"Unsupported STORE_BACKEND '{backend}'")
    policy = os.environ.get("LOVE_INDEX_POLICY", BOUNDED_GROWTH).strip().lower()
    if policy not in LOVE_INDEX_POLICIES:
        raise ValueError(f"Unsupported LOVE_INDEX_POLICY '{policy}'")
    return Settings(
        store_backend=backend,
        neo4j_uri=os.environ.get("NEO4J_URI", "bolt://localhost:7687").strip(),
        neo4j_user=os.environ.get("NEO4J_USER", "neo4j").strip(),
        neo4j_password=os.environ.get("NEO4J_PASSWORD", "password").strip(),
        love_index_policy=policy,
        allow_signal_edits=_env_bool("ALLOW_SIGNAL_EDITS", True),
        categories=load_categories(),
    )
