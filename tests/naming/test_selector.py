import pytest

from romsync.config.options import PriorityOptions
from romsync.naming.romname import parse_version_info
from romsync.naming.selector import (
    build_rank_table,
    calculate_priority,
    normalize_title,
    select_one_per_title,
    version_rank,
)


@pytest.mark.unit
def test_us_preferred_by_default():
    names = ["Foo (Japan).gb", "Foo (Europe).gb", "Foo (USA).gb"]
    assert select_one_per_title(names) == ["Foo (USA).gb"]


@pytest.mark.unit
def test_latest_revision_wins_within_region():
    names = ["Foo (USA).gb", "Foo (USA) (Rev 1).gb", "Foo (Europe).gb"]
    assert select_one_per_title(names) == ["Foo (USA) (Rev 1).gb"]


@pytest.mark.unit
def test_preferred_region_overrides_default_order():
    names = ["Foo (USA).gb", "Foo (Japan).gb"]
    options = PriorityOptions(preferred_region="jp")
    assert select_one_per_title(names, options) == ["Foo (Japan).gb"]


@pytest.mark.unit
def test_language_breaks_region_tie():
    names = ["Foo (Europe) (Fr,De).gb", "Foo (Europe) (En,De).gb"]
    assert select_one_per_title(names) == ["Foo (Europe) (En,De).gb"]


@pytest.mark.unit
def test_preferred_language_changes_winner():
    names = ["Foo (Europe) (En).gb", "Foo (Europe) (Fr).gb"]
    options = PriorityOptions(preferred_language="fr")
    assert select_one_per_title(names, options) == ["Foo (Europe) (Fr).gb"]


@pytest.mark.unit
def test_multi_disc_release_kept_whole():
    names = [
        "Saga (Europe) (Disc 1).zip",
        "Saga (Europe) (Disc 2).zip",
        "Saga (USA) (Disc 1).zip",
        "Saga (USA) (Disc 2).zip",
        "Saga (USA) (Disc 3).zip",
    ]
    assert select_one_per_title(names) == [
        "Saga (USA) (Disc 1).zip",
        "Saga (USA) (Disc 2).zip",
        "Saga (USA) (Disc 3).zip",
    ]


@pytest.mark.unit
def test_one_file_per_disc_uses_best_revision():
    names = [
        "Saga (USA) (Disc 1).zip",
        "Saga (USA) (Disc 1) (Rev 1).zip",
        "Saga (USA) (Disc 2).zip",
    ]
    assert select_one_per_title(names) == [
        "Saga (USA) (Disc 1) (Rev 1).zip",
        "Saga (USA) (Disc 2).zip",
    ]


@pytest.mark.unit
def test_exactly_one_group_per_title_and_order_preserved():
    names = [
        "Bravo (Japan).gb",
        "Alpha (USA).gb",
        "Alpha (Europe).gb",
        "Bravo (World).gb",
        "Charlie (Japan).gb",
    ]
    assert select_one_per_title(names) == ["Alpha (USA).gb", "Bravo (World).gb", "Charlie (Japan).gb"]


@pytest.mark.unit
def test_titles_compare_case_insensitively():
    names = ["Foo Bar (Europe).gb", "FOO  bar (USA).gb"]
    assert select_one_per_title(names) == ["FOO  bar (USA).gb"]
    assert normalize_title("FOO  bar") == "foo bar"


@pytest.mark.unit
def test_full_tie_keeps_first_seen_group():
    names = ["Foo (USA) (En,Fr).gb", "Foo (USA) (En).gb"]
    assert select_one_per_title(names) == ["Foo (USA) (En,Fr).gb"]


@pytest.mark.unit
def test_small_inputs_returned_unchanged():
    assert select_one_per_title([]) == []
    assert select_one_per_title(["Only (USA).gb"]) == ["Only (USA).gb"]


@pytest.mark.unit
def test_build_rank_table_orders_preferred_first():
    table = build_rank_table("jp", ["eu"], ["us", "eu", "jp"])
    assert table == {"jp": 3, "eu": 2, "us": 1}


@pytest.mark.unit
def test_version_rank_ordering():
    rev2 = version_rank(parse_version_info("Rev 2"))
    rev1 = version_rank(parse_version_info("Rev 1"))
    v12 = version_rank(parse_version_info("v1.2"))
    v11 = version_rank(parse_version_info("v1.1"))

    assert rev2 > rev1 > version_rank(None)
    assert v12 > v11
    assert version_rank(None, ["rev11"]) == v11


@pytest.mark.unit
def test_calculate_priority_prefers_region_then_version():
    assert calculate_priority("Foo (USA).gb") > calculate_priority("Foo (Japan).gb")
    assert calculate_priority("Foo (USA) (Rev 1).gb") > calculate_priority("Foo (USA).gb")
