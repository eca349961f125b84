from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .sources import SourcePolicy


DEFAULT_SEARXNG_ENDPOINTS: Tuple[str, ...] = (
    "https://searx.be",
    "https://search.sapti.me",
    "https://searx.tiekoetter.com",
    "https://searx.work",
    "https://searx.prvcy.eu",
)

DEFAULT_PLACEHOLDERS: Tuple[str, ...] = (
    "",
    "demo-key",
    "your_openai_api_key",
    "your_claude_api_key",
)


def repo_root() -> Path:
    # Assumes this file lives at: repo/src/reality_check/config.py
    return Path(__file__).resolve().parents[2]


def load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BackendSettings:
    name: str
    api_key: str
    model: str

    def usable(self, placeholders: Tuple[str, ...] = DEFAULT_PLACEHOLDERS) -> bool:
        """A backend counts as configured only when its key is not a reserved placeholder."""
        key = (self.api_key or "").strip()
        return bool(key) and key not in placeholders


@dataclass(frozen=True)
class AppConfig:
    env: str
    search_endpoints: Tuple[str, ...]
    search_timeout_s: float
    search_engines: str
    wiki_api_base: str
    primary_backend: BackendSettings
    secondary_backend: BackendSettings
    placeholders: Tuple[str, ...]
    newsapi_key: str
    use_free_sources_only: bool
    page_size: int
    rss_feeds: Dict[str, List[str]]
    storage_path: Path
    random_seed: Optional[int]
    source_policy: SourcePolicy

    @property
    def primary_backend_present(self) -> bool:
        return self.primary_backend.usable(self.placeholders)

    @property
    def secondary_backend_present(self) -> bool:
        return self.secondary_backend.usable(self.placeholders)

    @property
    def newsapi_key_present(self) -> bool:
        key = self.newsapi_key.strip()
        return bool(key) and key not in self.placeholders

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "AppConfig":
        """
        Build config from an already-parsed settings dict.
        Environment variables win over YAML values for secrets and toggles.
        """
        app = settings.get("app", {}) or {}
        search = settings.get("search", {}) or {}
        wiki = settings.get("wikipedia", {}) or {}
        llm = settings.get("llm", {}) or {}
        news = settings.get("news", {}) or {}
        storage = settings.get("storage", {}) or {}
        sources = settings.get("sources", {}) or {}

        endpoints = search.get("endpoints") or list(DEFAULT_SEARXNG_ENDPOINTS)
        if not isinstance(endpoints, list) or not all(isinstance(e, str) for e in endpoints):
            raise ValueError("settings.yaml search.endpoints must be a list of URLs")

        primary_cfg = llm.get("primary", {}) or {}
        secondary_cfg = llm.get("secondary", {}) or {}

        primary = BackendSettings(
            name="openai",
            api_key=os.getenv("OPENAI_API_KEY", str(primary_cfg.get("api_key", ""))),
            model=(os.getenv("OPENAI_MODEL") or str(primary_cfg.get("model", "gpt-4o-mini"))).strip(),
        )
        secondary = BackendSettings(
            name="claude",
            api_key=os.getenv("CLAUDE_API_KEY", str(secondary_cfg.get("api_key", ""))),
            model=(os.getenv("CLAUDE_MODEL") or str(secondary_cfg.get("model", "claude-3-5-sonnet-latest"))).strip(),
        )

        placeholders = tuple(str(p) for p in (llm.get("placeholders") or DEFAULT_PLACEHOLDERS))

        feeds = news.get("rss_feeds", {}) or {}
        if not isinstance(feeds, dict):
            raise ValueError("settings.yaml news.rss_feeds must map sector -> [feed urls]")

        seed_raw = os.getenv("RANDOM_SEED", app.get("random_seed"))
        seed = int(seed_raw) if seed_raw not in (None, "") else None

        known_hosts = sources.get("known_hosts")
        if known_hosts is not None and not isinstance(known_hosts, dict):
            raise ValueError("settings.yaml sources.known_hosts must map host -> [service, credibility]")

        storage_path = Path(str(storage.get("path", "artifacts/store.json")))
        if not storage_path.is_absolute():
            storage_path = repo_root() / storage_path

        return cls(
            env=str(os.getenv("APP_ENV", app.get("env", "local"))),
            search_endpoints=tuple(e.rstrip("/") for e in endpoints if e.strip()),
            search_timeout_s=float(search.get("timeout_s", 10.0)),
            search_engines=str(search.get("engines", "google,bing,duckduckgo,startpage")),
            wiki_api_base=(os.getenv("WIKI_API_BASE") or str(wiki.get("api_base", "https://en.wikipedia.org/w/api.php"))),
            primary_backend=primary,
            secondary_backend=secondary,
            placeholders=placeholders,
            newsapi_key=os.getenv("NEWSAPI_KEY", str(news.get("newsapi_key", ""))),
            use_free_sources_only=_env_flag("USE_FREE_SOURCES_ONLY", bool(news.get("use_free_sources_only", False))),
            page_size=int(news.get("page_size", 20)),
            rss_feeds={str(k): [str(u) for u in (v or [])] for k, v in feeds.items()},
            storage_path=storage_path,
            random_seed=seed,
            source_policy=SourcePolicy.from_config(known_hosts, sources.get("subdomain_allowed") or ()),
        )


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    load_dotenv(repo_root() / ".env")

    settings_path = settings_path or (repo_root() / "configs" / "settings.yaml")
    return AppConfig.from_settings(load_yaml(settings_path))
