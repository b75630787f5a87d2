"""Global key/value settings for storefront."""

from decimal import Decimal

from .data_store import DataStore
from .utils import to_decimal

SETTINGS_TABLE = "settings"

DEFAULT_SETTINGS: dict[str, str] = {
    "site_name": "F4TRADERS",
    "gst_percentage": "9",
    "cgst_percentage": "9",
    "support_email": "support@example.com",
}


class SettingsStore:
    """Flat key/value store read by the totals calculator and invoices.

    Settings are unversioned: a change applies to every later calculation.
    Orders snapshot the rates they were created with.
    """

    def __init__(self, data_store: DataStore):
        self.data_store = data_store

    def get_all(self) -> dict[str, str]:
        """Return every setting, with defaults for keys never written."""
        settings = dict(DEFAULT_SETTINGS)
        for row in self.data_store.select(SETTINGS_TABLE):
            settings[row["key"]] = row["value"]
        return settings

    def get(self, key: str, default: str | None = None) -> str | None:
        rows = self.data_store.select(SETTINGS_TABLE, {"key": key}, limit=1)
        if rows:
            return rows[0]["value"]
        return DEFAULT_SETTINGS.get(key, default)

    def set(self, key: str, value: object) -> None:
        """Create or overwrite a setting."""
        with self.data_store.transaction(SETTINGS_TABLE) as rows:
            for row in rows:
                if row["key"] == key:
                    row["value"] = str(value)
                    return
            rows.append({"id": key, "key": key, "value": str(value)})

    def tax_rates(self) -> tuple[Decimal, Decimal]:
        """Return the current global (GST, CGST) percentages."""
        return (
            to_decimal(self.get("gst_percentage")),
            to_decimal(self.get("cgst_percentage")),
        )
