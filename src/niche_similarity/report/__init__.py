from .tables import format_summary, write_result_workbook
from .plots import plot_niche_surfaces, plot_null_distribution
