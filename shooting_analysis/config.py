import os
from dotenv import load_dotenv
from pathlib import Path

root_dir = Path(__file__).resolve().parent.parent
env_path = root_dir / ".env"

load_dotenv(env_path)

class Config:
    DATA_PATH = os.getenv("SHOOTING_DATA_PATH", "./data/NYPD_Shooting_Incident_Data__Historic_.csv")

    OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR_MODEL", "./outputs/multinomial"))

    # Empty means "most frequent level"
    REFERENCE_LOCATION = os.getenv("REFERENCE_LOCATION") or None
    REFERENCE_BOROUGH = os.getenv("REFERENCE_BOROUGH") or None

    MAX_ITER = int(os.getenv("MNLOGIT_MAX_ITER", "100"))
    TOL = float(os.getenv("MNLOGIT_TOL", "1e-6"))
    SEPARATION_BOUND = float(os.getenv("MNLOGIT_SEPARATION_BOUND", "20"))

    @classmethod
    def initialize_folders(cls):
        cls.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
