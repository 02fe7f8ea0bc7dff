"""Taleforge dev launcher. Loads ./.env and runs the terminal front-end.

    python main.py --api-url http://localhost:5095/api login --dev me@example.com
"""

import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

from taleforge.cli import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())
