from smartschedule.core.config import Settings


def test_list_settings_accept_comma_separated_values():
    settings = Settings(required_rule_keys="breakWindow, capacityLimit", cors_origins="http://a.test,http://b.test")

    assert settings.required_rule_keys == ["breakWindow", "capacityLimit"]
    assert settings.cors_origins == ["http://a.test", "http://b.test"]


def test_list_settings_accept_json_arrays(monkeypatch):
    monkeypatch.setenv("REQUIRED_RULE_KEYS", '["midtermBlock"]')

    assert Settings().required_rule_keys == ["midtermBlock"]


def test_engine_defaults():
    settings = Settings()

    assert settings.failure_mode == "continue"
    assert settings.backtrack_budget == 5_000
    assert settings.cancel_check_interval >= 1
