import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

UNRESOLVED_VAR = re.compile(r'\$\{\w+\}')


class ApiConfig(BaseModel):
    base_url: str = "http://localhost:8000"
    token: Optional[str] = None
    timeout: float = 15.0


class FacilityConfig(BaseModel):
    company_id: Optional[str] = None
    utc_offset_hours: int = -3  # no daylight saving
    currency_symbol: str = "R$"


class OccupancyConfig(BaseModel):
    warning_threshold: int = 70
    critical_threshold: int = 90


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: Optional[str] = None


def drop_unresolved(data):
    """Values still holding a ${VAR} whose variable is unset are left out,
    so the field falls back to its default or the PARKTARIFF_* variables"""
    if isinstance(data, dict):
        return {key: drop_unresolved(value) for key, value in data.items()
                if not (isinstance(value, str) and UNRESOLVED_VAR.search(value))}
    return data


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PARKTARIFF_", extra="ignore")

    api: ApiConfig = ApiConfig()
    facility: FacilityConfig = FacilityConfig()
    occupancy: OccupancyConfig = OccupancyConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def load(cls, config_path: Path = None) -> "Config":
        """Load config from file with env var substitution"""
        load_dotenv()

        if config_path is None:
            config_path = Path("config.yaml")

        if config_path.exists():
            with open(config_path) as f:
                content = f.read()

            # Substitute ${VAR} with environment variables
            def replace_env(match):
                var_name = match.group(1)
                return os.environ.get(var_name, match.group(0))

            content = re.sub(r'\$\{(\w+)\}', replace_env, content)
            data = drop_unresolved(yaml.safe_load(content) or {})
            config = cls(**data)
        else:
            config = cls()

        # Plain env vars for the common case of no config file
        api_url = os.environ.get("PARKTARIFF_API_URL")
        if api_url:
            config.api.base_url = api_url
        api_token = os.environ.get("PARKTARIFF_API_TOKEN")
        if api_token and not config.api.token:
            config.api.token = api_token
        company_id = os.environ.get("PARKTARIFF_COMPANY_ID")
        if company_id and not config.facility.company_id:
            config.facility.company_id = company_id

        return config
