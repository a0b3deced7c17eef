import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import dotenv_values

from .logging import get_logger

log = get_logger("config")

BACKEND_OPENROUTER = "openrouter"
BACKEND_OPENAI = "openai"
BACKENDS = (BACKEND_OPENROUTER, BACKEND_OPENAI)

DEFAULT_BACKEND = BACKEND_OPENROUTER
DEFAULT_MODELS = {
    BACKEND_OPENROUTER: "google/gemini-2.5-flash",
    BACKEND_OPENAI: "gpt-5-mini",
}
DEFAULT_TIMEOUT_SECONDS = 120

# Credential lookup order per backend; API_KEY is the generic fallback.
_KEY_NAMES = {
    BACKEND_OPENROUTER: ("OPENROUTER_API_KEY", "OPEN_ROUTER_API_KEY", "API_KEY"),
    BACKEND_OPENAI: ("OPENAI_API_KEY", "API_KEY"),
}


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    Running the CLI from a subdirectory still finds the repository-level `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Return the key/value pairs of the nearest `.env`; the environment is left untouched."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    values = {k: v.strip() for k, v in dotenv_values(path).items() if v is not None}
    log.debug(f"Loaded {len(values)} key(s) from .env at {path}")
    return values


def _lookup(names, env: Dict[str, str]) -> Optional[str]:
    for name in names:
        v = os.environ.get(name)
        if v and v.strip():
            return v.strip()
    for name in names:
        v = env.get(name)
        if v:
            return v
    return None


@dataclass(frozen=True)
class ExtractorSettings:
    backend: str
    model: str
    api_key: Optional[str]
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    base_url: Optional[str] = None
    preview_dir: Optional[str] = None

    def with_api_key(self, api_key: Optional[str]) -> "ExtractorSettings":
        """Copy with a caller-supplied key; blank input keeps the configured one."""
        key = (api_key or "").strip()
        if not key:
            return self
        return ExtractorSettings(
            backend=self.backend,
            model=self.model,
            api_key=key,
            timeout_seconds=self.timeout_seconds,
            base_url=self.base_url,
            preview_dir=self.preview_dir,
        )


def load_backend(dotenv_dir: str) -> str:
    env = _read_dotenv(dotenv_dir)
    raw = (_lookup(("EXTRACTION_BACKEND",), env) or DEFAULT_BACKEND).lower()
    if raw not in BACKENDS:
        log.warning(f"Unknown EXTRACTION_BACKEND={raw!r}; defaulting to {DEFAULT_BACKEND!r}")
        return DEFAULT_BACKEND
    return raw


def load_api_key(dotenv_dir: str, backend: str) -> Optional[str]:
    """Return the API key for `backend` from env or .env, or None."""
    names = _KEY_NAMES.get(backend, ("API_KEY",))
    key = _lookup(names, _read_dotenv(dotenv_dir))
    if key:
        log.info(f"Using {backend} API key from configuration")
    else:
        log.debug(f"No API key found for backend {backend} (looked for {', '.join(names)})")
    return key


def _load_timeout(env: Dict[str, str]) -> int:
    raw = _lookup(("EXTRACTION_TIMEOUT",), env)
    if not raw:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        value = int(raw)
    except ValueError:
        log.warning(f"EXTRACTION_TIMEOUT={raw!r} is not an integer; using {DEFAULT_TIMEOUT_SECONDS}s")
        return DEFAULT_TIMEOUT_SECONDS
    return max(1, value)


def load_settings(
    dotenv_dir: Optional[str] = None,
    *,
    backend: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
) -> ExtractorSettings:
    """Resolve extraction settings; explicit arguments win over env and .env."""
    dotenv_dir = dotenv_dir or os.getcwd()
    env = _read_dotenv(dotenv_dir)

    chosen = (backend or load_backend(dotenv_dir)).lower()
    if chosen not in BACKENDS:
        raise ValueError(f"Unsupported backend {chosen!r}; choose one of {', '.join(BACKENDS)}")

    settings = ExtractorSettings(
        backend=chosen,
        model=model or _lookup(("EXTRACTION_MODEL",), env) or DEFAULT_MODELS[chosen],
        api_key=(api_key or "").strip() or load_api_key(dotenv_dir, chosen),
        timeout_seconds=_load_timeout(env),
        base_url=_lookup(("OPENAI_BASE_URL",), env) if chosen == BACKEND_OPENAI else None,
        preview_dir=_lookup(("IDCARD_PREVIEW_DIR",), env),
    )
    log.debug(
        f"Settings resolved: backend={settings.backend} model={settings.model} "
        f"timeout={settings.timeout_seconds}s key={'set' if settings.api_key else 'missing'}"
    )
    return settings
