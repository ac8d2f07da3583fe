import dataclasses
import json
import os
import pathlib
from dataclasses import dataclass, field
from typing import Any


@dataclass
class DatabaseConfig:
    host: str = "localhost"
    port: int = 5432
    name: str = "dataview"
    user: str = "dataview"
    password: str = ""

    @property
    def conninfo(self) -> str:
        return (
            f"host={self.host} port={self.port} "
            f"dbname={self.name} user={self.user} password={self.password}"
        )


@dataclass
class DataViewConfig:
    history_limit: int = 50
    lookup_chunk_size: int = 200
    log_level: str = "INFO"


def _known(cls, data: dict[str, Any]) -> dict[str, Any]:
    """Keep only the keys `cls` declares."""
    names = {f.name for f in dataclasses.fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class AppConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    dataview: DataViewConfig = field(default_factory=DataViewConfig)

    @classmethod
    def load(cls) -> "AppConfig":
        config_path = os.environ.get("CONFIG_FILE", "/run/secrets/config.json")
        path = pathlib.Path(config_path)

        if path.exists():
            with open(path) as f:
                data = json.load(f)
            return cls.from_dict(data)

        print(f"Warning: Config file not found at {config_path}")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppConfig":
        db_data = data.get("database", {})
        dv_data = data.get("dataview", {})
        return cls(
            database=DatabaseConfig(**_known(DatabaseConfig, db_data)),
            dataview=DataViewConfig(**_known(DataViewConfig, dv_data)),
        )
