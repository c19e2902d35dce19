import copy

import pytest

from romsync.config.loader import DEFAULT_CONFIG
from romsync.config.validator import ValidationError, validate_config


def _config(**sections):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    for name, values in sections.items():
        cfg[name].update(values)
    return cfg


@pytest.mark.unit
def test_defaults_are_valid():
    validate_config(_config())


@pytest.mark.unit
@pytest.mark.parametrize(
    "sections, message",
    [
        ({"download": {"jobs": 0}}, "download.jobs"),
        ({"download": {"jobs": True}}, "download.jobs"),
        ({"download": {"sources": ["tosec"]}}, "unknown source 'tosec'"),
        ({"download": {"disk_profile": "nvme"}}, "download.disk_profile"),
        ({"download": {"retry_count": 0}}, "download.retry_count"),
        ({"download": {"retry_delay": -1}}, "download.retry_delay"),
        ({"download": {"update": "yes"}}, "download.update"),
        ({"filters": {"preset": "europe"}}, "filters.preset"),
        ({"filters": {"custom": "(["}}, "filters.custom"),
        ({"filters": {"include_regions": [1, 2]}}, "filters.include_regions"),
        ({"filters": {"region_languages": ["en"]}}, "filters.region_languages"),
        ({"priority": {"preferred_region": 1}}, "priority.preferred_region"),
        ({"http": {"timeout": 0}}, "http.timeout"),
        ({"logging": {"level": "LOUD"}}, "logging.level"),
        ({"paths": {"target": ""}}, "paths.target"),
    ],
)
def test_invalid_values_are_reported(sections, message):
    with pytest.raises(ValidationError, match=message):
        validate_config(_config(**sections))


@pytest.mark.unit
def test_all_errors_are_collected():
    cfg = _config(download={"jobs": 0, "disk_profile": "nvme"}, http={"timeout": -1})

    with pytest.raises(ValidationError) as exc_info:
        validate_config(cfg)

    message = str(exc_info.value)
    assert message.count("\n  - ") == 3


@pytest.mark.unit
def test_comma_separated_strings_are_accepted():
    validate_config(_config(filters={"include_regions": "USA,Europe"}, priority={"region_order": "us,eu"}))
