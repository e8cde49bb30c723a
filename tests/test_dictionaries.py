import json
from pathlib import Path

import pytest

from inventory_intake.extraction.dictionaries import DictionaryError, ProductDictionaries, load_dictionaries
from inventory_intake.extraction.pattern import PatternExtractor


def _custom_tables() -> dict:
    return {
        "brands": ["Sakura", "Hoshino"],
        "categories": {"太鼓": ["taiko", "太鼓"]},
        "default_category": "その他",
        "colors": {"朱色": ["vermilion", "朱"]},
        "default_color": "無地",
        "conditions": {"新品": ["新品", "new"]},
        "default_condition": "中古",
    }


def test_bundled_tables_load() -> None:
    d = load_dictionaries()
    assert "YAMAHA" in d.brands
    assert d.default_category == "その他"
    assert d.match_brand("yamaha fg830") == "YAMAHA"
    assert d.classify_category("Precision bass") == "ベース"


def test_ascii_color_keywords_match_whole_words_only() -> None:
    d = load_dictionaries()
    assert d.match_color("Fender Strat Red") == "レッド"
    # "red" inside another word does not count
    assert d.match_color("Fender Strat registered") == "ナチュラル"


def test_custom_tables_drive_the_scanner(tmp_path: Path) -> None:
    path = tmp_path / "dict.json"
    path.write_text(json.dumps(_custom_tables(), ensure_ascii=False), encoding="utf-8")

    d = load_dictionaries(str(path))
    records = PatternExtractor(d).extract("Sakura taiko vermilion 80,000円")

    assert len(records) == 1
    rec = records[0]
    assert rec.manufacturer == "Sakura"
    assert rec.category == "太鼓"
    assert rec.color == "朱色"
    assert rec.condition == "中古"
    assert PatternExtractor(d).extract("YAMAHA FG830 45,000円") == []


def test_canonical_labels() -> None:
    d = load_dictionaries()
    assert d.canonical_category("") == "その他"
    assert d.canonical_category("Electric Guitar") == "ギター"
    assert d.canonical_category("ギター") == "ギター"
    assert d.canonical_condition("B-Stock") == "B級品"
    assert d.canonical_condition("") == ""


def test_invalid_tables_are_rejected(tmp_path: Path) -> None:
    bad = _custom_tables()
    bad["brands"] = []
    with pytest.raises(DictionaryError):
        ProductDictionaries.from_dict(bad)

    missing = tmp_path / "missing.json"
    with pytest.raises(DictionaryError):
        load_dictionaries(str(missing))
