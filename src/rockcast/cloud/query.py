"""Typed builder for Drive ``files.list`` search queries."""

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def quote(value: str) -> str:
    """Quote a string literal for the Drive query language."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class DriveQuery:
    """Immutable conjunction of Drive search clauses.

    Usage:
        DriveQuery().name("dotnetrocks").folder().not_trashed()
    """

    def __init__(self, clauses: tuple[str, ...] = ()) -> None:
        self._clauses = clauses

    def _with(self, clause: str) -> "DriveQuery":
        return DriveQuery(self._clauses + (clause,))

    def name(self, name: str) -> "DriveQuery":
        return self._with(f"name = {quote(name)}")

    def in_parent(self, parent_id: str) -> "DriveQuery":
        return self._with(f"{quote(parent_id)} in parents")

    def mime_type(self, mime_type: str) -> "DriveQuery":
        return self._with(f"mimeType = {quote(mime_type)}")

    def folder(self) -> "DriveQuery":
        return self.mime_type(FOLDER_MIME_TYPE)

    def not_trashed(self) -> "DriveQuery":
        return self._with("trashed = false")

    def __str__(self) -> str:
        return " and ".join(self._clauses)

    def __repr__(self) -> str:
        return f"DriveQuery({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, DriveQuery) and self._clauses == other._clauses

    def __hash__(self) -> int:
        return hash(self._clauses)
