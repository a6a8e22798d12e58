"""Patient records service: guarded procedures over the patient store."""

from pathlib import Path

from dotenv import load_dotenv

__version__ = "0.1.0"

load_dotenv(Path(__file__).resolve().parents[2] / ".env", override=False)

__all__ = ["__version__"]
