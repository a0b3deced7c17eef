import pytest

from idcard_extractor.config import DEFAULT_TIMEOUT_SECONDS, load_settings

_VARS = (
    "EXTRACTION_BACKEND",
    "EXTRACTION_MODEL",
    "EXTRACTION_TIMEOUT",
    "OPENROUTER_API_KEY",
    "OPEN_ROUTER_API_KEY",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "API_KEY",
    "IDCARD_PREVIEW_DIR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_any_configuration(tmp_path):
    settings = load_settings(str(tmp_path))
    assert settings.backend == "openrouter"
    assert settings.model == "google/gemini-2.5-flash"
    assert settings.api_key is None
    assert settings.timeout_seconds == DEFAULT_TIMEOUT_SECONDS


def test_dotenv_is_found_from_a_subdirectory(tmp_path):
    (tmp_path / ".env").write_text("OPENROUTER_API_KEY=sk-from-file\nEXTRACTION_TIMEOUT=45\n", encoding="utf-8")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    settings = load_settings(str(nested))
    assert settings.api_key == "sk-from-file"
    assert settings.timeout_seconds == 45


def test_environment_wins_over_dotenv(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("OPENROUTER_API_KEY=sk-file\n", encoding="utf-8")
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-env")
    assert load_settings(str(tmp_path)).api_key == "sk-env"


def test_explicit_arguments_win(tmp_path, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    settings = load_settings(str(tmp_path), backend="openai", model="gpt-custom", api_key=" sk-arg ")
    assert (settings.backend, settings.model, settings.api_key) == ("openai", "gpt-custom", "sk-arg")


def test_openai_backend_reads_its_own_key_and_base_url(tmp_path):
    (tmp_path / ".env").write_text(
        "EXTRACTION_BACKEND=openai\nOPENAI_API_KEY=sk-oa\nOPENAI_BASE_URL=http://localhost:8080/v1\n",
        encoding="utf-8",
    )
    settings = load_settings(str(tmp_path))
    assert settings.backend == "openai"
    assert settings.model == "gpt-5-mini"
    assert settings.api_key == "sk-oa"
    assert settings.base_url == "http://localhost:8080/v1"


def test_generic_api_key_is_the_fallback(tmp_path, monkeypatch):
    monkeypatch.setenv("API_KEY", "sk-generic")
    assert load_settings(str(tmp_path)).api_key == "sk-generic"


def test_unknown_backend_in_env_falls_back_to_default(tmp_path, monkeypatch):
    monkeypatch.setenv("EXTRACTION_BACKEND", "telepathy")
    assert load_settings(str(tmp_path)).backend == "openrouter"


def test_unknown_explicit_backend_is_rejected(tmp_path):
    with pytest.raises(ValueError):
        load_settings(str(tmp_path), backend="telepathy")


def test_bad_timeout_uses_default(tmp_path, monkeypatch):
    monkeypatch.setenv("EXTRACTION_TIMEOUT", "soon")
    assert load_settings(str(tmp_path)).timeout_seconds == DEFAULT_TIMEOUT_SECONDS


def test_with_api_key_ignores_blank_input(tmp_path, monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-env")
    settings = load_settings(str(tmp_path))
    assert settings.with_api_key("  ") is settings
    assert settings.with_api_key("sk-user").api_key == "sk-user"
