from __future__ import annotations

import logging
import os
from typing import Any

from ..plotting.audiogram_plot import render_results_figure
from ..screening.results import ResultsBundle
from .csv_export import default_filename

logger = logging.getLogger("hearcheck.export")


def export_graph_png(bundle: ResultsBundle, out_path: str, dpi: int = 150) -> str:
    """
    Render the results chart and save it as PNG.
    """
    if bundle.is_empty():
        raise ValueError("No results to export.")
    if os.path.isdir(out_path):
        out_path = os.path.join(out_path, default_filename("png"))
    render_results_figure(bundle, out_path=out_path, dpi=dpi)
    logger.info("Chart exported to %s", out_path)
    return out_path


def export_figure_png(figure: Any, out_path: str, dpi: int = 150) -> str:
    """Snapshot of a figure already on screen."""
    directory = os.path.dirname(out_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    figure.savefig(out_path, dpi=dpi)
    return out_path
