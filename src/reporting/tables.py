from pathlib import Path

import pandas as pd


def write_table(df: pd.DataFrame, path: Path, index: bool = True) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=index)


def write_latex_table(df: pd.DataFrame, path: Path, caption: str, label: str, decimals: int = 4) -> None:
    """Booktabs-style LaTeX table with fixed decimals for float columns."""

    path.parent.mkdir(parents=True, exist_ok=True)
    latex = df.to_latex(
        float_format=lambda v: f"{v:.{decimals}f}",
        caption=caption,
        label=label,
        escape=True,
    )
    path.write_text(latex, encoding="utf-8")
