"""Runtime settings for the event store and reporting.

Defaults suit a single web process writing to a local directory. Every field
can be overridden with a VARIANTLAB_<FIELD> environment variable, e.g.
VARIANTLAB_STORAGE_PATH=/var/lib/variantlab.
"""

import logging
import os
from collections.abc import MutableMapping
from dataclasses import dataclass, fields

from variantlab.ab.sticky import SessionStickyStore
from variantlab.collector.sink import EventSource
from variantlab.collector.store import FileEventStore, utc_now
from variantlab.errors import ConfigurationError
from variantlab.reporting.aggregator import ReportAggregator

ENV_PREFIX = "VARIANTLAB_"


@dataclass(frozen=True)
class Settings:
    storage_path: str = "data/carousel-analytics"
    base_path: str | None = None
    # Buffered events before an automatic flush
    flush_threshold: int = 50
    report_default_days: int = 30
    max_report_days: int = 366
    sticky_prefix: str = "carousel_variant_"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            if f.type is int:
                try:
                    values[f.name] = int(raw)
                except ValueError:
                    raise ConfigurationError(
                        f"{ENV_PREFIX}{f.name.upper()} must be an integer, got {raw!r}"
                    ) from None
            elif f.name == "base_path":
                values[f.name] = raw or None
            else:
                values[f.name] = raw
        return cls(**values)

    def create_store(self) -> FileEventStore:
        return FileEventStore(
            self.storage_path,
            base_path=self.base_path,
            flush_threshold=self.flush_threshold,
        )

    def create_aggregator(self, store: EventSource) -> ReportAggregator:
        return ReportAggregator(
            store,
            clock=getattr(store, "clock", utc_now),
            default_days=self.report_default_days,
            max_days=self.max_report_days,
        )

    def create_sticky_store(self, session: MutableMapping[str, str] | None = None) -> SessionStickyStore:
        return SessionStickyStore(session, prefix=self.sticky_prefix)

    def configure_logging(self) -> None:
        logging.basicConfig(
            level=self.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
