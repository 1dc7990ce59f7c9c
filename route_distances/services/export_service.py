"""
Spreadsheet export of the distance cache.

Builds a destinations x sources matrix of one-way distances, a round-trip
(2x) copy of it and an information sheet, and returns the workbook bytes.
"""
import io
import logging
import re
from datetime import date
from typing import List, Optional, Tuple

import numpy as np
from django.utils import timezone
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from route_distances.core.constants import (
    EXPORT_DECIMALS,
    EXPORT_NAME_COLUMN_WIDTH,
    EXPORT_PINCODE_COLUMN_WIDTH,
    EXPORT_SOURCE_COLUMN_WIDTH,
)
from route_distances.core.exceptions import ExportTooLarge, NothingToExport
from route_distances.models import Destination, Source
from route_distances.services.distance_cache_service import DistanceCache
from route_distances.settings import EXPORT_GENERATED_BY, EXPORT_MAX_CELLS

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


class DistanceExportService:
    """Renders a filtered snapshot of the distance cache as an .xlsx workbook."""

    def __init__(self, distance_cache=None, max_cells: Optional[int] = None):
        self.distance_cache = distance_cache or DistanceCache()
        self.max_cells = max_cells or EXPORT_MAX_CELLS

    @staticmethod
    def select(
        source_filter: Optional[str] = None,
        destination_filter: Optional[str] = None
    ) -> Tuple[List[Source], List[Destination]]:
        sources = Source.objects.all()
        destinations = Destination.objects.all()
        if source_filter:
            sources = sources.filter(name__icontains=source_filter)
        if destination_filter:
            destinations = destinations.filter(name__icontains=destination_filter)

        sources = sorted(sources, key=lambda s: (s.name.lower(), s.id))
        destinations = sorted(destinations, key=lambda d: (d.name.lower(), d.id))
        return sources, destinations

    def build_matrix(self, sources: List[Source], destinations: List[Destination]) -> np.ndarray:
        """
        One-way distances, rows = destinations, columns = sources.

        Pairs without a cached distance are NaN.
        """
        matrix = np.full((len(destinations), len(sources)), np.nan)
        distances = self.distance_cache.matrix(
            [source.id for source in sources],
            [destination.id for destination in destinations]
        )
        source_index = {source.id: j for j, source in enumerate(sources)}
        destination_index = {destination.id: i for i, destination in enumerate(destinations)}

        for (source_id, destination_id), distance_km in distances.items():
            matrix[destination_index[destination_id], source_index[source_id]] = distance_km

        return np.round(matrix, EXPORT_DECIMALS)

    @staticmethod
    def filename(
        source_filter: Optional[str] = None,
        destination_filter: Optional[str] = None,
        today: Optional[date] = None
    ) -> str:
        today = today or timezone.localdate()
        name = f"distance-matrix-{today.isoformat()}"
        filters = []
        if source_filter:
            filters.append(f"src-{re.sub(r'[^a-zA-Z0-9]', '', source_filter)}")
        if destination_filter:
            filters.append(f"dest-{re.sub(r'[^a-zA-Z0-9]', '', destination_filter)}")
        if filters:
            name += '-' + '-'.join(filters)
        return name + '.xlsx'

    @staticmethod
    def _write_matrix_sheet(sheet, sources, destinations, matrix):
        sheet.append(['Destination', 'Pincode'] + [source.name for source in sources])
        for i, destination in enumerate(destinations):
            values = [None if np.isnan(value) else float(value) for value in matrix[i]]
            sheet.append([destination.name, destination.pincode or ''] + values)

        widths = [EXPORT_NAME_COLUMN_WIDTH, EXPORT_PINCODE_COLUMN_WIDTH]
        widths += [EXPORT_SOURCE_COLUMN_WIDTH] * len(sources)
        for index, width in enumerate(widths, start=1):
            sheet.column_dimensions[get_column_letter(index)].width = width

    @staticmethod
    def _write_info_sheet(sheet, source_filter, destination_filter, sources, destinations, records):
        rows = [
            ['Export Information'],
            ['Generated on', timezone.localtime().strftime('%Y-%m-%d %H:%M:%S')],
            ['Generated by', EXPORT_GENERATED_BY],
            ['Source filter', source_filter or 'None'],
            ['Destination filter', destination_filter or 'None'],
            ['Total sources', len(sources)],
            ['Total destinations', len(destinations)],
            ['Total distance records', records],
            [],
            ['Sheets Included'],
            ['1. Distance Matrix - One-way distances in kilometers'],
            ['2. 2x Distance Matrix - Round-trip distances (to & fro)'],
            [],
            ['Instructions'],
            ['- Rows represent destinations'],
            ['- Columns represent sources'],
            ['- Values in Sheet 1 are one-way distances'],
            ['- Values in Sheet 2 are doubled for round-trip calculations'],
            ['- Empty cells indicate no calculated route'],
        ]
        headings = {'Export Information', 'Sheets Included', 'Instructions'}
        for row in rows:
            sheet.append(row)
            if row and row[0] in headings:
                sheet.cell(row=sheet.max_row, column=1).font = Font(bold=True, size=12)

        sheet.column_dimensions['A'].width = 25
        sheet.column_dimensions['B'].width = 40

    def export(
        self,
        source_filter: Optional[str] = None,
        destination_filter: Optional[str] = None
    ) -> Tuple[str, bytes]:
        """
        Build the workbook for the filtered selection.

        Returns:
            Tuple of (filename, xlsx bytes).

        Raises:
            NothingToExport: If no sources or no destinations match.
            ExportTooLarge: If the matrix exceeds the configured cell limit.
        """
        source_filter = (source_filter or '').strip()
        destination_filter = (destination_filter or '').strip()
        logger.info(f"Starting export with filters: source={source_filter!r}, destination={destination_filter!r}")

        sources, destinations = self.select(source_filter, destination_filter)
        if not sources or not destinations:
            raise NothingToExport("No data to export")

        total_cells = len(sources) * len(destinations)
        if total_cells > self.max_cells:
            raise ExportTooLarge(
                f"Dataset too large: {len(sources)} sources x {len(destinations)} destinations = "
                f"{total_cells:,} cells. Please apply filters to reduce the size."
            )

        matrix = self.build_matrix(sources, destinations)
        records = int(np.count_nonzero(~np.isnan(matrix)))
        today = timezone.localdate()

        workbook = Workbook()
        one_way = workbook.active
        one_way.title = f"Distance Matrix {today.isoformat()}"
        self._write_matrix_sheet(one_way, sources, destinations, matrix)

        round_trip = workbook.create_sheet(f"2x Distance Matrix {today.isoformat()}")
        self._write_matrix_sheet(round_trip, sources, destinations, np.round(matrix * 2, EXPORT_DECIMALS))

        info = workbook.create_sheet('Export Info')
        self._write_info_sheet(info, source_filter, destination_filter, sources, destinations, records)

        buffer = io.BytesIO()
        workbook.save(buffer)
        content = buffer.getvalue()
        logger.info(f"Excel file generated: {len(content)} bytes, "
                    f"{len(destinations)} x {len(sources)} matrix, {records} records")

        return self.filename(source_filter, destination_filter, today), content
