"""Tests for per-type value validation."""

from datetime import date, datetime, timezone

import pytest

from dataview.fields import Field, LinkOptions, NumberOptions, SelectOptions, parse_options
from dataview.validation import normalize_date, validate_value


ID_A = "0b5e7f3a-1c2d-4e5f-8a9b-0c1d2e3f4a5b"
ID_B = "1b5e7f3a-1c2d-4e5f-8a9b-0c1d2e3f4a5b"


def make_field(type: str, options=None, required: bool = False) -> Field:
    return Field(
        id="f1",
        name="Field",
        type=type,
        required=required,
        options=parse_options(type, options or {}),
    )


class TestEmptyValues:
    """Test handling of absent input."""

    @pytest.mark.parametrize("value", [None, "", []])
    def test_optional_empty_is_valid(self, value):
        """Empty input on an optional field normalizes to None."""
        result = validate_value(make_field("text"), value)
        assert result.valid is True
        assert result.normalized_value is None

    def test_required_empty_fails(self):
        """Empty input on a required field is an error."""
        result = validate_value(make_field("text", required=True), "")
        assert result.valid is False
        assert result.error == 'Field "Field" is required'


class TestScalarTypes:
    """Test text, email, url, number and checkbox rules."""

    def test_text_coerced(self):
        """Text fields coerce to strings."""
        assert validate_value(make_field("text"), 42).normalized_value == "42"

    def test_email(self):
        """Email needs a local@domain.tld shape."""
        assert validate_value(make_field("email"), "a@b.co").valid is True
        assert validate_value(make_field("email"), "not-an-email").valid is False

    def test_url(self):
        """URLs must be absolute."""
        assert validate_value(make_field("url"), "https://example.com/x").valid is True
        assert validate_value(make_field("url"), "example.com").valid is False

    def test_number_precision(self):
        """Numbers are rounded to the configured precision."""
        result = validate_value(make_field("number", {"precision": 2}), "3.14159")
        assert result.valid is True
        assert result.normalized_value == 3.14

    def test_number_rejects_text(self):
        """Non-numeric text fails."""
        result = validate_value(make_field("percent"), "lots")
        assert result.valid is False
        assert "Invalid number" in result.error

    def test_number_rejects_bool(self):
        """Booleans are not numbers."""
        assert validate_value(make_field("number"), True).valid is False

    @pytest.mark.parametrize("value,expected", [
        (True, True),
        ("true", True),
        ("1", True),
        ("yes", True),
        (1, True),
        ("YES", False),
        ("no", False),
        (0, False),
        (False, False),
    ])
    def test_checkbox(self, value, expected):
        """Checkbox maps a fixed set of truthy inputs and never fails."""
        result = validate_value(make_field("checkbox"), value)
        assert result.valid is True
        assert result.normalized_value is expected


class TestDates:
    """Test date normalization."""

    def test_iso_string(self):
        """ISO strings normalize to a UTC instant."""
        assert normalize_date("2024-03-05T10:20:30Z") == "2024-03-05T10:20:30.000Z"

    def test_date_object(self):
        """Dates become midnight UTC."""
        assert normalize_date(date(2024, 3, 5)) == "2024-03-05T00:00:00.000Z"

    def test_aware_datetime_converted(self):
        """Offsets are converted to UTC."""
        value = datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc)
        assert normalize_date(value) == "2024-03-05T12:00:00.000Z"

    def test_epoch_millis(self):
        """Numbers are millisecond timestamps."""
        assert normalize_date(0) == "1970-01-01T00:00:00.000Z"

    def test_invalid(self):
        """Unparseable input fails validation."""
        result = validate_value(make_field("date"), "next tuesday")
        assert result.valid is False


class TestSelects:
    """Test single and multi select choices."""

    def test_single_select_choice(self):
        """Values must match a configured choice exactly."""
        field = make_field("single_select", {"choices": ["open", "closed"]})
        assert validate_value(field, "open").valid is True
        result = validate_value(field, "Open")
        assert result.valid is False
        assert "Valid choices: open, closed" in result.error

    def test_select_options_supersede_choices(self):
        """selectOptions labels replace the legacy choices list."""
        field = make_field("single_select", {
            "choices": ["old"],
            "selectOptions": [{"id": "1", "label": "new"}],
        })
        assert isinstance(field.options, SelectOptions)
        assert field.options.choices == ("new",)

    def test_single_select_without_choices(self):
        """With no choices configured, anything passes."""
        assert validate_value(make_field("single_select"), "x").normalized_value == "x"

    def test_multi_select_dedupes(self):
        """Multi-select keeps first occurrences only."""
        field = make_field("multi_select", {"choices": ["a", "b"]})
        result = validate_value(field, ["a", "b", "a"])
        assert result.normalized_value == ["a", "b"]

    def test_multi_select_reports_invalid_subset(self):
        """Only the invalid entries are listed."""
        field = make_field("multi_select", {"choices": ["a", "b"]})
        result = validate_value(field, ["a", "z"])
        assert result.valid is False
        assert 'Invalid choices for "Field": z.' in result.error


class TestLinks:
    """Test link values that are already ids."""

    def test_single_id(self):
        """A canonical id is accepted as-is."""
        result = validate_value(make_field("link_to_table"), ID_A)
        assert result.valid is True
        assert result.normalized_value == ID_A

    def test_multi_ids(self):
        """Multi-link fields keep a list."""
        field = make_field("link_to_table", {"relationship_type": "many-to-many"})
        assert isinstance(field.options, LinkOptions)
        result = validate_value(field, [ID_A, ID_B, ID_A])
        assert result.normalized_value == [ID_A, ID_B]

    def test_single_link_rejects_several_ids(self):
        """A single-link field cannot store more than one id."""
        result = validate_value(make_field("link_to_table"), [ID_A, ID_B])
        assert result.valid is False
        assert result.error == "Single-link field cannot accept multiple values. Found: 2 records"

    def test_max_selections_makes_multi(self):
        """max_selections above one means a list."""
        field = make_field("link_to_table", {"max_selections": 3})
        assert validate_value(field, ID_A).normalized_value == [ID_A]

    def test_label_needs_resolution(self):
        """Display text is routed to label resolution."""
        result = validate_value(make_field("link_to_table"), "Alice")
        assert result.valid is False
        assert result.needs_resolution is True


class TestStructured:
    """Test json, attachment and computed fields."""

    def test_json_object(self):
        """Objects and arrays are accepted."""
        assert validate_value(make_field("json"), {"a": 1}).normalized_value == {"a": 1}

    def test_json_string(self):
        """Strings must parse as JSON documents."""
        assert validate_value(make_field("json"), "[1, 2]").normalized_value == [1, 2]
        assert validate_value(make_field("attachment"), "nope").valid is False

    @pytest.mark.parametrize("type", ["formula", "lookup"])
    def test_computed_always_fails(self, type):
        """Computed fields are read-only."""
        result = validate_value(make_field(type), "x")
        assert result.valid is False
        assert "computed field" in result.error

    def test_unknown_type_passes_through(self):
        """Unrecognized types keep the value."""
        assert validate_value(make_field("rating"), 5).normalized_value == 5


class TestIdempotence:
    """Validating a normalized value yields the same value."""

    @pytest.mark.parametrize("type,options,value", [
        ("text", None, "hello"),
        ("number", {"precision": 1}, "2.345"),
        ("date", None, "2024-01-02T03:04:05.678+02:00"),
        ("checkbox", None, "yes"),
        ("multi_select", None, ["x", "x", "y"]),
        ("link_to_table", {"relationship_type": "one-to-many"}, [ID_A]),
        ("json", None, '{"a": 1}'),
    ])
    def test_idempotent(self, type, options, value):
        """Second pass is a no-op."""
        field = make_field(type, options)
        first = validate_value(field, value)
        assert first.valid is True
        second = validate_value(field, first.normalized_value)
        assert second.normalized_value == first.normalized_value


class TestOptionsParsing:
    """Test options variants chosen by field type."""

    def test_options_from_json_text(self):
        """Stored options may arrive as JSON text."""
        options = parse_options("number", '{"precision": 3}')
        assert options == NumberOptions(precision=3)

    def test_extra_keys_ignored(self):
        """Unknown keys do not break parsing."""
        options = parse_options("link_to_table", {"linked_table_id": "t", "colour": "red"})
        assert options == LinkOptions(linked_table_id="t")
