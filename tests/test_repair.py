from __future__ import annotations

from framecast.repair import repair


def test_repair_given_doubled_opening_quote_when_repaired_then_single_fix_is_reported() -> None:
    # Given
    text = "const style = { fontSize: ''42px' };\n"

    # When
    result = repair(text)

    # Then
    assert result.text == "const style = { fontSize: '42px' };\n"
    assert result.fix_count == 1
    assert len(result.fixes) == 1


def test_repair_given_repaired_text_when_repaired_again_then_text_is_a_fixed_point() -> None:
    # Given
    text = "const a = { color: 'red'', width: ''10pxpx', label: \"x\"\"\" };\n"
    first = repair(text)

    # When
    second = repair(first.text)

    # Then
    assert first.fix_count >= 2
    assert second.text == first.text
    assert second.fix_count == 0


def test_repair_given_stray_trailing_quote_when_repaired_then_literal_is_closed_once() -> None:
    # Given
    text = "const theme = { color: 'red'', width: 10 };\n"

    # When
    result = repair(text)

    # Then
    assert result.text == "const theme = { color: 'red', width: 10 };\n"
    assert result.fix_count == 1
    assert result.fixes[0].startswith("Removed stray trailing quote")
    assert "'red''" in result.fixes[0]


def test_repair_given_quote_runs_of_three_or_more_when_repaired_then_runs_collapse_to_empty_literals() -> None:
    # Given
    text = "const a = f(''');\nconst b = \"\"\"\";\n"

    # When
    result = repair(text)

    # Then
    assert result.text == "const a = f('');\nconst b = \"\";\n"
    assert result.fix_count == 2
    assert all(fix.startswith("Collapsed quote run") for fix in result.fixes)


def test_repair_given_quotes_in_comments_and_templates_when_repaired_then_prose_is_untouched() -> None:
    # Given
    text = "// it''s ''' fine\nconst t = `he said ''hi'' ${name}`;\n/* ''x' */\n"

    # When
    result = repair(text)

    # Then
    assert result.text == text
    assert result.fix_count == 0


def test_repair_given_empty_string_literals_when_repaired_then_they_are_kept() -> None:
    # Given
    text = "const a = '';\nconst b = f('', \"\");\n"

    # When
    result = repair(text)

    # Then
    assert result.text == text
    assert result.fixes == []


def test_repair_given_duplicated_unit_when_repaired_then_unit_is_collapsed() -> None:
    # Given
    text = "const pad = '12pxpx';\n"

    # When
    result = repair(text)

    # Then
    assert result.text == "const pad = '12px';\n"
    assert result.fix_count == 1
