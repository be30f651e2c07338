from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from ..process.bg_test import BgTestResult

SUMMARY_HEADERS = ["Statistic", "Observed", "p-value", "Simulated mean", "Simulated 2.5%", "Simulated 97.5%"]
SIMULATED_HEADERS = ["Replicate", "D", "I"]
HEAD_ROWS = 6


def _format_number(value: float) -> Optional[float]:
	if value is None or not np.isfinite(value):
		return None
	return round(float(value), 6)


def summary_rows(result: BgTestResult) -> List[List[object]]:
	rows: List[List[object]] = []
	for statistic, observed, simulated in (
		("D", result.observed_d, result.simulated_d),
		("I", result.observed_i, result.simulated_i),
	):
		rows.append(
			[
				statistic,
				_format_number(observed),
				_format_number(result.p_values[statistic]),
				_format_number(float(np.mean(simulated))),
				_format_number(float(np.percentile(simulated, 2.5))),
				_format_number(float(np.percentile(simulated, 97.5))),
			]
		)
	return rows


def format_summary(result: BgTestResult) -> str:
	"""Plain-text report: the head of each point table followed by the p-values."""
	parts = [f"\n\n{result.description}\n"]
	for point_set in (
		result.sp1_env,
		result.sp1_bg_env,
		result.sp2_env,
		result.sp2_bg_env,
		result.background_env,
	):
		parts.append(point_set.to_frame().head(HEAD_ROWS).to_string(index=False))
		parts.append("")

	parts.append(
		f"Observed D = {result.observed_d:.4f}, I = {result.observed_i:.4f} "
		f"({result.test.nreps} replicates, {result.test_type}, {result.test.alternative})"
	)
	parts.append("\necospat.bg test p-values:")
	parts.append("  ".join(f"{key}: {value:.4f}" for key, value in result.p_values.items()))
	return "\n".join(parts)


def _autosize(worksheet, headers: Sequence[str], rows: Sequence[Sequence[object]]) -> None:
	for idx, heading in enumerate(headers, start=1):
		column_values = [heading] + [row[idx - 1] for row in rows]
		max_length = max((len(str(value)) for value in column_values), default=len(heading))
		worksheet.column_dimensions[get_column_letter(idx)].width = min(max_length + 2, 50)


def write_result_workbook(result: BgTestResult, destination: Path) -> Path:
	"""Persist the observed statistics, p-values and null distribution as XLSX."""
	destination = Path(destination)
	destination.parent.mkdir(parents=True, exist_ok=True)

	workbook = Workbook()
	summary = workbook.active
	summary.title = "Summary"
	summary.append(SUMMARY_HEADERS)
	rows = summary_rows(result)
	for row in rows:
		summary.append(row)
	_autosize(summary, SUMMARY_HEADERS, rows)

	simulated = workbook.create_sheet("Simulated")
	simulated.append(SIMULATED_HEADERS)
	sim_rows = [
		[index, _format_number(d_value), _format_number(i_value)]
		for index, (d_value, i_value) in enumerate(zip(result.simulated_d, result.simulated_i), start=1)
	]
	for row in sim_rows:
		simulated.append(row)
	_autosize(simulated, SIMULATED_HEADERS, sim_rows)

	workbook.save(destination)
	return destination
