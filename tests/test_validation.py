import pytest

from inventory_intake.domain.models import ProductRecord
from inventory_intake.extraction.errors import ValidationError, ValidationErrorKind
from inventory_intake.extraction.validation import RecordValidator, dedupe_records, is_valid_record


def test_records_need_name_or_model_number() -> None:
    assert is_valid_record(ProductRecord(product_name="YAMAHA FG830"))
    assert is_valid_record(ProductRecord(model_number="FG830"))
    assert not is_valid_record(ProductRecord(product_name="  ", manufacturer="YAMAHA", price="45000"))


def test_validate_filters_normalizes_and_dedupes() -> None:
    records = [
        ProductRecord(product_name="Fender Jazz Bass", manufacturer="Fender", price="¥120,000", category="bass"),
        ProductRecord(product_name="Fender Jazz Bass", manufacturer="Fender", price="120000円", category="ベース"),
        ProductRecord(manufacturer="Fender", price="5000"),
        ProductRecord(
            product_name="Marshall JCM800",
            price="要見積",
            list_price="¥200,000",
            wholesale_price="n/a",
            condition="used",
        ),
    ]

    out = RecordValidator().validate(records)

    assert [r.product_name for r in out] == ["Fender Jazz Bass", "Marshall JCM800"]
    bass, amp = out
    assert bass.price == "120000"
    assert bass.category == "ベース"
    assert amp.price == ""
    assert amp.list_price == "200000"
    assert amp.wholesale_price is None
    assert amp.condition == "中古"
    assert amp.category == "その他"


def test_unknown_condition_is_left_empty() -> None:
    out = RecordValidator().validate([ProductRecord(product_name="KORG Minilogue", condition="まあまあ")])
    assert out[0].condition == ""


def test_dedupe_is_idempotent_and_keeps_first() -> None:
    a = ProductRecord(product_name="A", manufacturer="M", price="1", notes="first")
    b = ProductRecord(product_name="A", manufacturer="M", price="1", notes="second")
    c = ProductRecord(product_name="A", manufacturer="M", price="2")

    once = dedupe_records([a, b, c, a])

    assert once == [a, c]
    assert dedupe_records(once) == once


def test_empty_result_raises_with_rejected_sample() -> None:
    junk = [ProductRecord(manufacturer=f"M{i}", notes="x" * 500) for i in range(8)]

    with pytest.raises(ValidationError) as excinfo:
        RecordValidator().validate(junk, source_text="some source text")

    err = excinfo.value
    assert err.kind is ValidationErrorKind.EMPTY
    assert err.http_status == 400
    assert err.debug["extracted_count"] == 8
    assert len(err.debug["rejected_sample"]) == 5
    assert all(len(s) <= 200 for s in err.debug["rejected_sample"])
    assert err.debug["text_preview"] == "some source text"


def test_unusable_prices_are_dropped_not_invented() -> None:
    out = RecordValidator().validate(
        [
            ProductRecord(product_name="Ernie Ball Slinky", price="12.7"),
            ProductRecord(product_name="BOSS DS-1", price="1" * 30, list_price="9,800"),
        ]
    )

    assert [r.price for r in out] == ["", ""]
    assert out[1].list_price == "9800"
