from pathlib import Path
import pandas as pd
from datetime import date, datetime
from tqdm import tqdm

from utils.config import cfg_section, cfg_bool


def log_dataframe(df: pd.DataFrame, out_path: Path, overwrite: bool = True):
    """
    Write DataFrame to CSV.
    Overwrites by default; overwrite=False appends (header only on a new file).
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if overwrite:
        df.to_csv(out_path, mode="w", header=True, index=False)
    else:
        header = not out_path.exists()
        df.to_csv(out_path, mode="a", header=header, index=False)


def today_filename(prefix: str, unique: bool = False, log_dir: str = "logs") -> Path:
    """
    Returns path like logs/prefix_YYYY-MM-DD.csv.
    If unique=True, include timestamp to second for multiple runs per day.
    """
    if unique:
        stamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
        return Path(log_dir) / f"{prefix}_{stamp}.csv"
    return Path(log_dir) / f"{prefix}_{date.today()}.csv"


def explain_enabled(cfg: dict | None) -> bool:
    return cfg_bool(cfg_section(cfg, "logging"), "explain", True)


def logline(msg: str) -> None:
    # tqdm.write keeps active progress bars intact
    tqdm.write(msg)


def explain(msg: str, cfg: dict | None) -> None:
    if explain_enabled(cfg):
        logline(msg)
