"""Import a subject catalog from a JSON or YAML file."""
import json
from pathlib import Path

from marks_ledger.errors import PreconditionError
from marks_ledger.seed import seed_catalog

REQUIRED_KEYS = ("academic_year_id", "class_id")


def read_catalog_file(file_path: str) -> dict:
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix == ".json":
        data = json.loads(path.read_text())
    elif suffix in (".yaml", ".yml"):
        import yaml
        data = yaml.safe_load(path.read_text())
    else:
        raise PreconditionError(f"Unsupported catalog file type: {suffix or path.name}")

    if not isinstance(data, dict):
        raise PreconditionError("Catalog file must contain a mapping at the top level")
    missing = [key for key in REQUIRED_KEYS if key not in data]
    if missing:
        raise PreconditionError(f"Catalog file is missing: {', '.join(missing)}")
    return data


def import_catalog_file(db_path: str, file_path: str) -> dict:
    """Seed the database from a catalog file. Returns the seed summary plus the filename."""
    data = read_catalog_file(file_path)
    summary = seed_catalog(db_path, data)
    return {"filename": Path(file_path).name, **summary}
