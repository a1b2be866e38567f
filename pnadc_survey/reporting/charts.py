"""
Charts for survey tables and raw observations.

**Conceptual**: Three chart types cover the walkthrough:
  - Bar charts of proportions (stacked, 100%-filled or side by side), for
    tables such as "literacy by race".
  - Scatter plots of two variables, for raw record-level relationships
    such as "years of study vs income".
  - Histograms with a fixed bin width, for distributions such as weekly
    hours worked.

Every function returns a matplotlib Figure so the caller decides whether to
show it, save it (save_figure) or embed it. Nothing here reads or writes
data files.

**Teaching note**: Scatter plots and histograms of *unweighted* records
describe the sample, not the population. Bar charts built from
weighted_frequency or survey_table describe the population.
"""

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.figure import Figure
from matplotlib.ticker import PercentFormatter


BAR_POSITIONS = ("stack", "fill", "dodge")


def _apply_minimal_theme(ax) -> None:
    """Light styling: no top/right spines, faint horizontal grid behind the data."""
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.grid(True, axis="y", alpha=0.3)
    ax.set_axisbelow(True)


def _set_titles(ax, title: str, subtitle: str | None) -> None:
    ax.set_title(title if not subtitle else f"{title}\n{subtitle}", loc="left")


def bar_chart(
    table: pd.DataFrame,
    x: str,
    y: str,
    fill: str | None = None,
    position: str = "stack",
    title: str = "",
    subtitle: str | None = None,
    xlabel: str | None = None,
    ylabel: str | None = None,
    legend_title: str | None = None,
    percent_axis: bool = True,
    figsize: tuple[float, float] = (10, 6),
) -> Figure:
    """
    Bar chart of a value by category, optionally split by a second category.

    **Positions**:
      - "stack": segments of each `fill` level stacked on top of each other.
      - "fill": like stack, but every bar rescaled to 100%.
      - "dodge": one bar per `fill` level, side by side.

    Categories appear in their categorical order (dictionary order for
    labelled PNADC variables), otherwise sorted.

    Args:
        table: Long table with one row per (x, fill) combination.
        x: Category column on the horizontal axis.
        y: Value column (e.g., "Prop" or "Freq").
        fill: Optional second category column (segments / colours).
        position: "stack", "fill" or "dodge".
        title: Chart title.
        subtitle: Optional second title line.
        xlabel: Axis label (default: x).
        ylabel: Axis label (default: y).
        legend_title: Legend title (default: fill).
        percent_axis: Format the value axis as percentages (values in [0, 1]).
        figsize: Figure size in inches.

    Returns:
        matplotlib Figure.

    Raises:
        ValueError: If position is unknown.
        KeyError: If a column is missing.
    """
    if position not in BAR_POSITIONS:
        raise ValueError(f"position must be one of {BAR_POSITIONS}, got: {position}")

    columns = [x, y] + ([fill] if fill else [])
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise KeyError(f"Columns not found for bar chart: {missing}")

    if fill:
        wide = (
            table.groupby([x, fill], observed=True, sort=True)[y].sum()
            .unstack(fill, fill_value=0.0)
        )
    else:
        wide = table.groupby(x, observed=True, sort=True)[y].sum().to_frame(y)

    if position == "fill":
        wide = wide.div(wide.sum(axis=1), axis=0).fillna(0.0)

    fig, ax = plt.subplots(figsize=figsize)
    positions = np.arange(len(wide.index))

    if fill and position == "dodge":
        width = 0.8 / max(len(wide.columns), 1)
        for i, level in enumerate(wide.columns):
            offset = (i - (len(wide.columns) - 1) / 2.0) * width
            ax.bar(positions + offset, wide[level].to_numpy(), width=width, label=str(level))
    elif fill:
        bottom = np.zeros(len(wide.index))
        for level in wide.columns:
            values = wide[level].to_numpy(dtype=float)
            ax.bar(positions, values, bottom=bottom, width=0.8, label=str(level))
            bottom += values
    else:
        ax.bar(positions, wide[y].to_numpy(dtype=float), width=0.8)

    ax.set_xticks(positions)
    ax.set_xticklabels([str(v) for v in wide.index], rotation=30, ha="right")

    if percent_axis:
        ax.yaxis.set_major_formatter(PercentFormatter(xmax=1.0))

    ax.set_xlabel(xlabel if xlabel is not None else x)
    ax.set_ylabel(ylabel if ylabel is not None else y)
    _set_titles(ax, title, subtitle)
    if fill:
        ax.legend(title=legend_title if legend_title is not None else fill)
    _apply_minimal_theme(ax)

    fig.tight_layout()
    return fig


def scatter_chart(
    table: pd.DataFrame,
    x: str,
    y: str,
    alpha: float = 0.3,
    color: str = "blue",
    title: str = "",
    subtitle: str | None = None,
    xlabel: str | None = None,
    ylabel: str | None = None,
    figsize: tuple[float, float] = (10, 6),
) -> Figure:
    """
    Scatter plot of two columns, one point per record.

    Records with a missing x or y are skipped. A categorical x (such as
    VD3005, years of study) is drawn at positions 0..k-1 with the category
    names as tick labels.

    Returns:
        matplotlib Figure.
    """
    missing = [c for c in (x, y) if c not in table.columns]
    if missing:
        raise KeyError(f"Columns not found for scatter chart: {missing}")

    points = table[[x, y]].dropna()

    fig, ax = plt.subplots(figsize=figsize)

    if isinstance(points[x].dtype, pd.CategoricalDtype):
        categories = list(points[x].cat.categories)
        xs = points[x].cat.codes.to_numpy()
        ax.set_xticks(np.arange(len(categories)))
        ax.set_xticklabels([str(c) for c in categories], rotation=45, ha="right")
    else:
        xs = points[x].to_numpy(dtype=float)

    ax.scatter(xs, points[y].to_numpy(dtype=float), alpha=alpha, color=color, s=12)

    ax.set_xlabel(xlabel if xlabel is not None else x)
    ax.set_ylabel(ylabel if ylabel is not None else y)
    _set_titles(ax, title, subtitle)
    _apply_minimal_theme(ax)

    fig.tight_layout()
    return fig


def histogram_bins(values, binwidth: float) -> pd.DataFrame:
    """
    Count observations in fixed-width, left-closed bins.

    **Conceptual**: Bins are aligned on multiples of the width, so with width
    5 the edges are ..., 0, 5, 10, ... regardless of where the data starts.
    Each bin is [left, right): a value equal to an edge belongs to the bin it
    opens.

    **Mathematical**: With b the width, the first bin starts at
    floor(min / b) · b and there are floor(max / b) - floor(min / b) + 1 bins,
    so the maximum always falls inside the last one.

    Args:
        values: Observations; missing values are ignored.
        binwidth: Positive bin width.

    Returns:
        DataFrame with columns left, right, count (empty when there are no values).

    Raises:
        ValueError: If binwidth is not positive.

    Example:
        >>> histogram_bins([0, 4, 5, 9, 10], 5)
           left  right  count
        0   0.0    5.0      2
        1   5.0   10.0      2
        2  10.0   15.0      1
    """
    if binwidth <= 0:
        raise ValueError(f"binwidth must be positive, got: {binwidth}")

    data = pd.to_numeric(pd.Series(values), errors="coerce").dropna().to_numpy(dtype=float)
    if len(data) == 0:
        return pd.DataFrame({"left": [], "right": [], "count": []}).astype({"count": int})

    # Quotients rounded first: 0.3 / 0.1 is 2.9999999999999996 in floating point
    position = np.floor(np.round(data / binwidth, 9))
    first = position.min()
    n_bins = int(position.max() - first) + 1

    # Bin index computed directly so every edge value lands in the bin it opens
    index = (position - first).astype(int)
    counts = np.bincount(index, minlength=n_bins)

    left = np.round((first + np.arange(n_bins)) * binwidth, 9)
    return pd.DataFrame({"left": left, "right": left + binwidth, "count": counts})


def histogram_chart(
    table: pd.DataFrame,
    column: str,
    binwidth: float = 5,
    fill: str = "lightblue",
    edgecolor: str = "black",
    title: str = "",
    subtitle: str | None = None,
    xlabel: str | None = None,
    ylabel: str = "Count",
    figsize: tuple[float, float] = (10, 6),
) -> Figure:
    """
    Histogram of one column with fixed-width bins (see histogram_bins).

    Returns:
        matplotlib Figure.
    """
    if column not in table.columns:
        raise KeyError(f"Column not found for histogram: '{column}'")

    bins = histogram_bins(table[column], binwidth)

    fig, ax = plt.subplots(figsize=figsize)
    ax.bar(
        bins["left"].to_numpy(),
        bins["count"].to_numpy(),
        width=binwidth,
        align="edge",
        color=fill,
        edgecolor=edgecolor,
    )

    ax.set_xlabel(xlabel if xlabel is not None else column)
    ax.set_ylabel(ylabel)
    _set_titles(ax, title, subtitle)
    _apply_minimal_theme(ax)

    fig.tight_layout()
    return fig


def save_figure(fig: Figure, path: Path | str, dpi: int = 150) -> Path:
    """
    Write a figure to disk as PNG and release it.

    Creates the parent directory if needed. The figure is closed afterwards,
    so don't reuse it.

    Returns:
        Path written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=dpi)
    plt.close(fig)
    return path
