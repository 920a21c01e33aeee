"""Tests for the Drive query builder."""

from rockcast.cloud.query import FOLDER_MIME_TYPE, DriveQuery, quote


def test_quote_escapes_quotes_and_backslashes() -> None:
    """Test quotes and backslashes are escaped inside the literal."""
    assert quote("Carl's \\ show") == "'Carl\\'s \\\\ show'"


def test_clauses_joined_with_and() -> None:
    """Test each builder call adds one clause joined with 'and'."""
    query = DriveQuery().name("dotnetrocks").in_parent("root").folder().not_trashed()

    assert str(query) == (
        "name = 'dotnetrocks' and 'root' in parents and "
        f"mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
    )


def test_builder_is_immutable() -> None:
    """Test narrowing returns a new query and leaves the original alone."""
    base = DriveQuery().name("a.json")
    narrowed = base.not_trashed()

    assert str(base) == "name = 'a.json'"
    assert narrowed != base
    assert narrowed == DriveQuery().name("a.json").not_trashed()
    assert hash(narrowed) == hash(DriveQuery().name("a.json").not_trashed())


def test_name_with_quote_is_escaped() -> None:
    """Test names go through the same escaping as other literals."""
    assert str(DriveQuery().name("Carl's notes")) == "name = 'Carl\\'s notes'"


def test_empty_query() -> None:
    """Test an empty builder renders as an empty string."""
    assert str(DriveQuery()) == ""
