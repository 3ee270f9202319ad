"""CSV export of analytics responses for spreadsheet consumption.

Output contract:
- UTF-8 text starting with a byte-order mark (U+FEFF).
- ``;``-delimited by default, every field double-quoted (empty ones too),
  embedded quotes doubled, rows terminated by ``\\n``.
- One row per period of either series; when a product column is selected
  the rows are the cross product of revenue periods and leaderboard products.
- No data still yields a header plus one placeholder row.

The exporter is a generator. Once the header chunk has been yielded an
HTTP status can no longer be changed, so any failure while producing rows
switches the remaining output to a fixed fallback line instead of raising.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterator
from decimal import Decimal
from typing import Any

from app.core.config import get_settings
from app.core.logging import get_logger
from app.features.analytics.schemas import (
    PRODUCT_CSV_COLUMNS,
    AnalyticsResponse,
    CSVColumn,
    CSVExportRequest,
)

logger = get_logger(__name__)

BOM = "\ufeff"
FALLBACK_LINE = '"Error generating CSV report"\n'
NO_DATA_MESSAGE = "No data available for the selected range"

Record = dict[CSVColumn, Any]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return format(value, ".2f")
    return str(value)


class CSVExporter:
    """Serialize analytics responses to quoted, delimited CSV chunks."""

    def __init__(self, delimiter: str | None = None) -> None:
        """Initialize the exporter.

        Args:
            delimiter: Field delimiter; defaults to the configured one.
        """
        self.delimiter = delimiter or get_settings().analytics_csv_delimiter

    def iter_csv(
        self,
        analytics: AnalyticsResponse | None,
        request: CSVExportRequest,
    ) -> Iterator[str]:
        """Yield the CSV document chunk by chunk.

        The first chunk holds the BOM and header row; each later chunk is one
        data row.

        Args:
            analytics: Shaped response, or None when the range had no data.
            request: Export request (window and column selection).

        Yields:
            CSV text chunks.
        """
        started = False
        try:
            columns = request.resolved_columns()
            buffer = io.StringIO()
            writer = csv.writer(
                buffer,
                delimiter=self.delimiter,
                quotechar='"',
                quoting=csv.QUOTE_ALL,
                lineterminator="\n",
            )

            writer.writerow([c.value for c in columns])
            header = BOM + self._drain(buffer)
            started = True
            yield header

            row_count = 0
            for record in self._records(analytics, request, columns):
                writer.writerow([_cell(record.get(c)) for c in columns])
                row_count += 1
                yield self._drain(buffer)

            logger.info(
                "analytics.csv_exported",
                from_date=str(request.from_date),
                to_date=str(request.to_date),
                columns=[c.value for c in columns],
                rows=row_count,
                has_data=analytics is not None,
            )
        except Exception as e:
            logger.error(
                "analytics.csv_export_failed",
                error=str(e),
                error_type=type(e).__name__,
                header_sent=started,
                exc_info=True,
            )
            yield FALLBACK_LINE if started else BOM + FALLBACK_LINE

    def render(
        self,
        analytics: AnalyticsResponse | None,
        request: CSVExportRequest,
    ) -> str:
        """Render the whole CSV document as one string."""
        return "".join(self.iter_csv(analytics, request))

    @staticmethod
    def _drain(buffer: io.StringIO) -> str:
        chunk = buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)
        return chunk

    @staticmethod
    def _records(
        analytics: AnalyticsResponse | None,
        request: CSVExportRequest,
        columns: list[CSVColumn],
    ) -> Iterator[Record]:
        if analytics is None:
            yield {
                CSVColumn.PERIOD: f"{request.from_date.isoformat()} to {request.to_date.isoformat()}",
                CSVColumn.ORDER_COUNT: 0,
                CSVColumn.CANCELLED_COUNT: 0,
                CSVColumn.REVENUE: Decimal("0.00"),
                CSVColumn.LOST_REVENUE: Decimal("0.00"),
                CSVColumn.AVG_PREP_TIME: None,
                CSVColumn.PRODUCT_NAME: NO_DATA_MESSAGE,
                CSVColumn.QUANTITY: 0,
                CSVColumn.PRODUCT_REVENUE: Decimal("0.00"),
            }
            return

        series_by_period = {s.period: s for s in analytics.series}
        cancelled_by_period = {c.period: c for c in analytics.cancelled_series}
        periods = sorted(series_by_period.keys() | cancelled_by_period.keys())

        expand_products = bool(PRODUCT_CSV_COLUMNS.intersection(columns)) and bool(
            analytics.products_sold
        )

        # Product rows pair a period with what sold in it, so cancelled-only
        # periods have no product rows
        row_periods = sorted(series_by_period) if expand_products else periods

        for period in row_periods:
            point = series_by_period.get(period)
            cancelled = cancelled_by_period.get(period)
            base: Record = {
                CSVColumn.PERIOD: period,
                CSVColumn.ORDER_COUNT: point.order_count if point else 0,
                CSVColumn.CANCELLED_COUNT: cancelled.cancelled_count if cancelled else 0,
                CSVColumn.REVENUE: point.revenue if point else Decimal("0.00"),
                CSVColumn.LOST_REVENUE: cancelled.lost_revenue if cancelled else Decimal("0.00"),
                CSVColumn.AVG_PREP_TIME: point.avg_prep_time if point else None,
            }

            if not expand_products:
                yield base
                continue

            # Denormalized for spreadsheet pivoting: period x product
            for product in analytics.products_sold:
                yield {
                    **base,
                    CSVColumn.PRODUCT_ID: product.product_id,
                    CSVColumn.PRODUCT_NAME: product.name,
                    CSVColumn.QUANTITY: product.quantity,
                    CSVColumn.PRODUCT_REVENUE: product.revenue,
                }
