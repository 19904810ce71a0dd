import sys

from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.config import LOGS_DIR, MODELING_FILE, RAW_FILE_2018  # noqa: E402
from src.utils.logging import RUN_PACKAGES, run_metadata, write_json  # noqa: E402


def main() -> None:
    info = run_metadata(
        PROJECT_ROOT,
        raw_file=str(RAW_FILE_2018),
        raw_file_exists=RAW_FILE_2018.exists(),
        modeling_file_exists=MODELING_FILE.exists(),
    )
    missing = [pkg for pkg in RUN_PACKAGES if info["packages"][pkg] is None]
    info["missing_packages"] = missing
    write_json(LOGS_DIR / "environment_check.json", info)
    print("Wrote outputs/logs/environment_check.json")
    if missing:
        raise SystemExit(f"Missing packages: {missing}")


if __name__ == "__main__":
    main()
