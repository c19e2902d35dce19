import pytest

from romsync.config.options import FilterOptions
from romsync.naming.filters import (
    DEFAULT_REGION_LANGUAGES,
    FilterError,
    apply_filters,
    get_preset_filter,
    infer_language_codes,
    load_filter_list,
    parse_custom_filter,
    parse_pattern_list,
)


NAMES = [
    "Alpha (USA).zip",
    "Alpha (Europe) (En,Fr,De).zip",
    "Alpha (Japan).zip",
    "Bravo (USA) (Beta).zip",
    "Charlie (World).zip",
    "Delta (Germany).zip",
    "Echo (USA) (Unl).zip",
]


@pytest.mark.unit
def test_default_options_drop_prerelease_and_unlicensed():
    result = apply_filters(NAMES, FilterOptions())

    assert "Bravo (USA) (Beta).zip" not in result
    assert "Echo (USA) (Unl).zip" not in result
    assert "Alpha (Japan).zip" in result


@pytest.mark.unit
def test_release_type_opt_in():
    options = FilterOptions(include_prerelease=True, include_unlicensed=True)
    assert apply_filters(NAMES, options) == NAMES


@pytest.mark.unit
def test_preset_wins_over_custom_filter():
    options = FilterOptions(preset="usa", custom_filter=r"Japan")
    assert apply_filters(NAMES, options) == ["Alpha (USA).zip"]


@pytest.mark.unit
def test_custom_filter_applies_without_preset():
    options = FilterOptions(custom_filter=r"\((World|Germany)\)")
    assert apply_filters(NAMES, options) == ["Charlie (World).zip", "Delta (Germany).zip"]


@pytest.mark.unit
def test_invalid_custom_filter_raises():
    with pytest.raises(FilterError):
        apply_filters(NAMES, FilterOptions(custom_filter="(unclosed"))


@pytest.mark.unit
def test_unknown_preset_raises():
    with pytest.raises(FilterError):
        get_preset_filter("mars")
    assert get_preset_filter("all") is None


@pytest.mark.unit
def test_region_include_and_exclude():
    included = apply_filters(NAMES, FilterOptions(include_regions=["us", "wor"]))
    assert included == ["Alpha (USA).zip", "Charlie (World).zip"]

    excluded = apply_filters(NAMES, FilterOptions(exclude_regions=["jp", "de"]))
    assert "Alpha (Japan).zip" not in excluded
    assert "Delta (Germany).zip" not in excluded
    assert "Alpha (USA).zip" in excluded


@pytest.mark.unit
def test_language_filter_infers_from_region():
    result = apply_filters(NAMES, FilterOptions(include_languages=["de"]))
    # Explicit tag and inferred from Germany
    assert result == ["Alpha (Europe) (En,Fr,De).zip", "Delta (Germany).zip"]


@pytest.mark.unit
def test_language_inference_can_be_disabled():
    result = apply_filters(NAMES, FilterOptions(include_languages=["de"], infer_languages=False))
    assert result == ["Alpha (Europe) (En,Fr,De).zip"]


@pytest.mark.unit
def test_language_inference_table_is_overridable():
    options = FilterOptions(include_languages=["ja"], region_languages={"wor": ["ja"]})
    assert apply_filters(NAMES, options) == ["Charlie (World).zip"]


@pytest.mark.unit
def test_exclude_list_wins_over_include_list():
    options = FilterOptions(
        include_list=["Alpha (USA)", "Charlie (World).zip"],
        exclude_list=["alpha (usa).zip"],
    )
    assert apply_filters(NAMES, options) == ["Charlie (World).zip"]


@pytest.mark.unit
def test_glob_patterns():
    options = FilterOptions(include_patterns=["alpha*"], exclude_patterns=["*(japan)*"])
    assert apply_filters(NAMES, options) == [
        "Alpha (USA).zip",
        "Alpha (Europe) (En,Fr,De).zip",
    ]


@pytest.mark.unit
def test_filters_preserve_order_and_are_conjunctive():
    options = FilterOptions(include_regions=["us", "eu"], include_languages=["fr"])
    assert apply_filters(NAMES, options) == ["Alpha (Europe) (En,Fr,De).zip"]


@pytest.mark.unit
def test_parse_pattern_list_escaped_commas():
    assert parse_pattern_list("Game\\, The,Other") == ["Game, The", "Other"]
    assert parse_pattern_list(None) == []


@pytest.mark.unit
def test_parse_custom_filter_compiles():
    assert parse_custom_filter(r"\(USA\)").search("Alpha (USA).zip")


@pytest.mark.unit
def test_load_filter_list_skips_comments(tmp_path):
    path = tmp_path / "keep.txt"
    path.write_text("# favourites\nAlpha (USA)\n\n  Charlie (World).zip  \n")

    assert load_filter_list(path) == ["Alpha (USA)", "Charlie (World).zip"]


@pytest.mark.unit
def test_load_filter_list_missing_file(tmp_path):
    with pytest.raises(FilterError):
        load_filter_list(tmp_path / "missing.txt")


@pytest.mark.unit
def test_infer_language_codes_deduplicates():
    assert infer_language_codes(["us", "uk", "ca"]) == ["en", "fr"]
    assert infer_language_codes(["xx"]) == []
    assert DEFAULT_REGION_LANGUAGES["jp"] == ["ja"]
