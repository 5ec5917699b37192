from __future__ import annotations

from framecast.store import Store


def test_save_conversion_given_record_and_findings_when_saved_then_both_are_retrievable(
    tmp_path,
    conversion_record_model,
    sample_findings,
) -> None:
    # Given
    store = Store(tmp_path / "nested" / "framecast.db")
    store.init_db()

    # When
    store.save_conversion(conversion_record_model, sample_findings)
    saved = store.get_conversion(conversion_record_model.conversion_id)
    findings = store.get_findings(conversion_record_model.conversion_id)

    # Then
    assert saved is not None
    assert saved["identifier"] == "counter"
    assert saved["is_valid"] is False
    assert saved["used_placeholder"] is False
    assert saved["confidence"] == 0.5
    assert saved["notes"] == ["count: kept initial value"]
    assert saved["created_at"] == "2026-01-01T00:00:00+00:00"
    assert [row["rule"] for row in findings] == ["unresolved-identifier", "nondeterministic-call"]
    assert (findings[0]["line"], findings[0]["column"]) == (3, 5)
    assert findings[1]["line"] is None


def test_get_conversion_given_unknown_id_when_fetched_then_returns_none(tmp_path) -> None:
    # Given
    store = Store(tmp_path / "framecast.db")
    store.init_db()

    # When
    missing = store.get_conversion("does-not-exist")

    # Then
    assert missing is None
    assert store.get_findings("does-not-exist") == []


def test_list_conversions_given_several_records_when_listed_then_newest_first_and_filtered(
    tmp_path,
    conversion_record_model,
) -> None:
    # Given
    store = Store(tmp_path / "framecast.db")
    store.init_db()
    newer = conversion_record_model.model_copy(
        update={
            "conversion_id": "conv00000002",
            "identifier": "particles",
            "created_at": conversion_record_model.created_at.replace(day=2),
            "is_valid": True,
        },
    )
    store.save_conversion(conversion_record_model, [])
    store.save_conversion(newer, [])

    # When
    everything = store.list_conversions(limit=10)
    filtered = store.list_conversions(identifier="counter", limit=10)
    limited = store.list_conversions(limit=1)

    # Then
    assert [row["conversion_id"] for row in everything] == ["conv00000002", "conv00000001"]
    assert everything[0]["is_valid"] is True
    assert [row["identifier"] for row in filtered] == ["counter"]
    assert len(limited) == 1
    assert "source_text" not in everything[0]
