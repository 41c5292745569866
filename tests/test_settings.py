import json

import pytest

from examlens.config import BASE_URLS, DEFAULT_CHAINS, ModelChain, Provider, ProviderConfig, Task
from examlens.errors import ValidationError
from examlens.settings import load_settings, resolve_config, save_settings, settings_path


def test_settings_path_honours_examlens_home(tmp_path):
    assert settings_path({"EXAMLENS_HOME": str(tmp_path)}) == tmp_path / "settings.json"


def test_save_then_resolve_round_trip(tmp_path):
    path = tmp_path / "settings.json"
    cfg = ProviderConfig(
        provider=Provider.QWEN,
        credential="sk-qwen-0001",
        chains={"grade": ("qwen-vl-max-latest",)},
    )
    save_settings(cfg, path)

    loaded = resolve_config(path, env={})
    assert loaded.provider is Provider.QWEN
    assert loaded.credential == "sk-qwen-0001"
    assert loaded.chain(Task.GRADE).models == ("qwen-vl-max-latest",)
    assert loaded.chain(Task.OCR).models == DEFAULT_CHAINS[Provider.QWEN][Task.OCR]


def test_resolve_without_file_defaults_to_gemini(tmp_path):
    cfg = resolve_config(tmp_path / "missing.json", env={})
    assert cfg.provider is Provider.GEMINI
    assert cfg.credential is None


def test_env_key_overrides_saved_key(tmp_path):
    path = tmp_path / "settings.json"
    save_settings(ProviderConfig(credential="saved-key-0001"), path)
    cfg = resolve_config(path, env={"EXAMLENS_API_KEY": "env-key-0002"})
    assert cfg.credential == "env-key-0002"


@pytest.mark.parametrize(
    "provider,env_name",
    [("gemini", "GOOGLE_AI_API_KEY"), ("gemini", "GEMINI_API_KEY"), ("qwen", "DASHSCOPE_API_KEY")],
)
def test_provider_specific_key_fills_missing_credential(tmp_path, provider, env_name):
    cfg = resolve_config(
        tmp_path / "none.json", env={"EXAMLENS_PROVIDER": provider, env_name: "k-123456789"}
    )
    assert cfg.provider is Provider(provider)
    assert cfg.credential == "k-123456789"


def test_provider_switch_via_env_drops_other_providers_key(tmp_path):
    path = tmp_path / "settings.json"
    save_settings(ProviderConfig(provider=Provider.GEMINI, credential="gemini-key-01"), path)
    cfg = resolve_config(path, env={"EXAMLENS_PROVIDER": "QWEN"})
    assert cfg.provider is Provider.QWEN
    assert cfg.credential is None


def test_unreadable_settings_are_ignored(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_settings(path) is None
    assert resolve_config(path, env={}).provider is Provider.GEMINI


def test_saved_file_is_plain_json(tmp_path):
    path = save_settings(ProviderConfig(credential="abc-123456"), tmp_path / "s.json")
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["provider"] == "gemini"
    assert data["credential"] == "abc-123456"


def test_with_credential_switch_resets_provider_specific_fields():
    cfg = ProviderConfig(
        provider=Provider.GEMINI,
        credential="a" * 10,
        base_url="http://proxy.local/v1",
        chains={"ocr": ("x",)},
        temperature=0.5,
    )
    same = cfg.with_credential("b" * 10, "gemini")
    assert same.base_url == "http://proxy.local/v1"
    assert same.chains == {"ocr": ("x",)}

    other = cfg.with_credential("c" * 10, Provider.QWEN)
    assert other.base_url is None
    assert other.chains == {}
    assert other.temperature == 0.5
    assert other.endpoint() == BASE_URLS[Provider.QWEN]


def test_redacted_masks_credential():
    shown = ProviderConfig(credential="sk-1234567890").redacted()
    assert shown["credential"] == "sk-1...90"
    assert "1234567" not in json.dumps(shown)


def test_empty_model_chain_rejected():
    with pytest.raises(ValueError):
        ModelChain(task=Task.OCR, models=())


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_unknown_saved_provider_is_validation_error(tmp_path):
    path = _write(tmp_path / "settings.json", {"provider": "claude"})
    with pytest.raises(ValidationError, match="unknown provider 'claude'"):
        resolve_config(path, env={})


def test_unknown_env_provider_is_validation_error(tmp_path):
    with pytest.raises(ValidationError, match="EXAMLENS_PROVIDER"):
        resolve_config(tmp_path / "none.json", env={"EXAMLENS_PROVIDER": "openai"})


@pytest.mark.parametrize("chains", [["qwen-vl-max"], "qwen-vl-max", {"ocr": 3}, {"ocr": ["a", 1]}])
def test_malformed_chains_are_validation_errors(tmp_path, chains):
    path = _write(tmp_path / "settings.json", {"provider": "qwen", "chains": chains})
    with pytest.raises(ValidationError):
        resolve_config(path, env={})


def test_bare_string_chain_is_one_model(tmp_path):
    path = _write(tmp_path / "settings.json", {"provider": "qwen", "chains": {"ocr": "qwen-vl-max"}})
    cfg = resolve_config(path, env={})
    assert cfg.chain(Task.OCR).models == ("qwen-vl-max",)
