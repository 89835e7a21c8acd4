from __future__ import annotations

from pathlib import Path

from inboxie.config.plans import FREE, PAID, can_use_feature, get_email_limit, get_plan_config
from inboxie.config.settings import PROJECT_ROOT, load_settings


def test_plan_limits() -> None:
    assert get_email_limit(FREE) == 50
    assert get_email_limit(PAID) == 500
    assert get_plan_config(PAID).name == "Pro"


def test_unknown_plan_is_treated_as_free() -> None:
    assert get_plan_config("enterprise") == get_plan_config(FREE)


def test_ai_features_are_paid_only() -> None:
    for feature in ("ai_replies", "voice_training", "custom_categories", "advanced_search"):
        assert can_use_feature(PAID, feature) is True
        assert can_use_feature(FREE, feature) is False
    assert can_use_feature(PAID, "teleportation") is False


def test_load_settings_reads_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("SUPABASE_URL", "https://db.example.supabase.co")
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
    monkeypatch.setenv("ALPHA_MODE", "TRUE")
    monkeypatch.setenv("INBOXIE_SECRETS_DIR", str(tmp_path))
    monkeypatch.setenv("INBOXIE_LABEL_PREFIX", "Inboxie/")

    settings = load_settings()

    assert settings.openai_api_key == "sk-test"
    assert settings.supabase_key == "anon"
    assert settings.alpha_mode is True
    assert settings.secrets_dir == tmp_path
    assert settings.label_prefix == "Inboxie/"


def test_relative_secrets_dir_resolves_against_project_root(monkeypatch) -> None:
    monkeypatch.setenv("INBOXIE_SECRETS_DIR", "secrets")
    monkeypatch.delenv("ALPHA_MODE", raising=False)

    settings = load_settings()

    assert settings.secrets_dir == PROJECT_ROOT / "secrets"
    assert settings.alpha_mode is False
