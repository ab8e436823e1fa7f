from pathlib import Path
import logging
import os
import sys

from dotenv import load_dotenv

# Ensure the src directory is on sys.path when running as a script
_SRC_DIR = Path(__file__).resolve().parents[1]
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from pmsim.bootstrap import create_progression_engine
from pmsim.presentation.cli import run_cli


def _print_help_surface() -> None:
    print("\nHelp:")
    print("- Run: python -m pmsim --days 6 --seed 7")
    print("- Sessions live in memory unless PMSIM_DATABASE_URL is set.")
    print("- Coaching uses fixed rules unless PMSIM_LLM_API_KEY is set.")


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("PMSIM_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        engine = create_progression_engine()
        return run_cli(engine, argv)
    except KeyboardInterrupt:
        print("\nSession ended.")
        return 130
    except Exception as exc:
        print("An unexpected error occurred. The simulation closed safely.")
        print(f"Reason: {exc}")
        _print_help_surface()
        return 1


if __name__ == "__main__":
    sys.exit(main())
