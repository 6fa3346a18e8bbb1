import pytest

from application import (
    ApplicationError,
    GetConfigUseCase,
    UpdateConfigCommand,
    UpdateConfigUseCase,
)
from settings import Settings, get_settings

DEFAULTS = {
    "BONUS_ON_TIME": 3,
    "BONUS_STAR_3": 1,
    "BONUS_STAR_4": 2,
    "BONUS_STAR_5": 3,
    "BM_DELAY_PER_HR": 1,
    "BM_REWORK": 5,
    "ALLOW_TIME_EDIT": 0,
}


def _update(uow, **values):
    return UpdateConfigUseCase().execute(UpdateConfigCommand(values=values), uow)


def test_defaults(uow):
    assert GetConfigUseCase().execute(uow).values == DEFAULTS


def test_update_merges_over_defaults(uow):
    result = _update(uow, BM_REWORK=8, bonus_on_time=4)
    assert result.values["BM_REWORK"] == 8
    assert result.values["BONUS_ON_TIME"] == 4
    assert result.values["BONUS_STAR_5"] == 3
    assert GetConfigUseCase().execute(uow).values == result.values


def test_null_restores_default(uow):
    _update(uow, BM_REWORK=8)
    assert _update(uow, BM_REWORK=None).values["BM_REWORK"] == 5


@pytest.mark.parametrize(
    "values, message",
    [
        ({"BONUS_FOREVER": 1}, "Unknown config key"),
        ({"BM_REWORK": -1}, "must not be negative"),
        ({"BM_REWORK": "lots"}, "must be a number"),
        ({"ALLOW_TIME_EDIT": True}, "must be a number"),
        ({"ALLOW_TIME_EDIT": 2}, "0 or 1"),
    ],
)
def test_invalid_updates(uow, values, message):
    with pytest.raises(ApplicationError, match=message):
        UpdateConfigUseCase().execute(UpdateConfigCommand(values=values), uow)
    assert GetConfigUseCase().execute(uow).values == DEFAULTS


def test_environment_overrides_defaults(uow, monkeypatch):
    monkeypatch.setenv("WORKTRACK_BM_REWORK", "7")
    get_settings.cache_clear()
    assert GetConfigUseCase().execute(uow).values["BM_REWORK"] == 7


def test_settings_policy_defaults():
    settings = Settings(bonus_star_5=4, allow_time_edit=1)
    policy = settings.policy_defaults()
    assert policy.bonus_star_5 == 4
    assert policy.time_edit_allowed is True
    assert settings.is_production is False
