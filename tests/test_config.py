import pytest

from mindwolf.core.config import Settings
from mindwolf.models.generation import ProviderKind
from mindwolf.services.generation_gateway import gateway_from_settings
from mindwolf.services.providers import AnthropicProvider, LocalTemplateProvider, OpenAIChatProvider


def make_settings(**overrides):
    """Settings isolated from the environment and any .env file."""
    values = dict(
        OPENAI_API_KEY=None,
        ANTHROPIC_API_KEY=None,
        COMPATIBLE_API_KEY=None,
        COMPATIBLE_BASE_URL=None,
        OPENAI_USE_REALTIME=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_defaults():
    settings = make_settings()

    assert settings.LLM_PROVIDER_ORDER == ["openai", "anthropic", "openai_compatible"]
    assert settings.RETRY_MAX_ATTEMPTS == 3
    assert settings.RETRY_BASE_DELAY == 0.5
    assert settings.BREAKER_FAILURE_THRESHOLD == 3
    assert settings.REPLAY_DIR is None


def test_only_local_provider_without_credentials():
    configs = make_settings().provider_configs()

    assert [c.name for c in configs] == ["local"]
    assert configs[0].kind == ProviderKind.LOCAL


def test_provider_order_is_respected():
    settings = make_settings(
        OPENAI_API_KEY="sk-openai",
        ANTHROPIC_API_KEY="sk-anthropic",
        COMPATIBLE_BASE_URL="https://openrouter.ai/api/v1",
        COMPATIBLE_API_KEY="sk-router",
        LLM_PROVIDER_ORDER=["anthropic", "openai_compatible", "openai"],
        LLM_TIMEOUT=5.0,
    )

    configs = settings.provider_configs()

    assert [c.name for c in configs] == ["anthropic", "openai-compatible", "openai", "local"]
    compatible = configs[1]
    assert compatible.endpoint == "https://openrouter.ai/api/v1"
    assert compatible.api_key == "sk-router"
    assert all(c.timeout == 5.0 for c in configs[:3])


def test_realtime_session_precedes_openai_chat():
    settings = make_settings(OPENAI_API_KEY="sk-openai", OPENAI_USE_REALTIME=True)

    configs = settings.provider_configs()

    assert [c.name for c in configs] == ["openai-realtime", "openai", "local"]
    assert configs[0].realtime is True
    assert configs[0].model == settings.OPENAI_REALTIME_MODEL
    assert configs[1].realtime is False


def test_unknown_provider_kind_rejected():
    settings = make_settings(LLM_PROVIDER_ORDER=["openai", "cohere"])
    with pytest.raises(ValueError):
        settings.provider_configs()


def test_api_key_not_in_repr():
    configs = make_settings(ANTHROPIC_API_KEY="sk-secret").provider_configs()
    assert "sk-secret" not in repr(configs[0])


def test_suspicion_weights_from_settings():
    weights = make_settings(WEIGHT_NIGHT_RESULT=0.9, WEIGHT_ROLE_CLAIM=0.1).suspicion_weights()

    assert weights.night_result_conflict == 0.9
    assert weights.role_claim_conflict == 0.1
    assert weights.contradiction_in_speech == 0.15
    assert weights.voting_pattern_divergence == 0.2


def test_weights_must_stay_in_range():
    with pytest.raises(ValueError):
        make_settings(WEIGHT_CONTRADICTION=1.5)


def test_gateway_from_settings():
    settings = make_settings(
        OPENAI_API_KEY="sk-openai",
        ANTHROPIC_API_KEY="sk-anthropic",
        RETRY_MAX_ATTEMPTS=2,
        RETRY_BASE_DELAY=0.1,
        BREAKER_FAILURE_THRESHOLD=5,
    )

    gateway = gateway_from_settings(settings)

    assert [type(p) for p in gateway.providers] == [OpenAIChatProvider, AnthropicProvider]
    assert isinstance(gateway.fallback, LocalTemplateProvider)
    assert gateway.retry.max_attempts == 2
    assert gateway.retry.base_delay == 0.1
    assert gateway.breakers["openai"].failure_threshold == 5
