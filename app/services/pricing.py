import json
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from app.core.config import settings
from app.core.exceptions import ConfigurationError


class VolumeRate(BaseModel):
    """
    Monthly pricing for one EBS volume type.

    cost = size_gb * per_gb_month + max(0, iops - included_iops) * per_iops_month
    """
    per_gb_month: float = Field(ge=0)
    per_iops_month: float = Field(default=0.0, ge=0)
    included_iops: int = Field(default=0, ge=0)

    def monthly_cost(self, size_gb: int, iops: int) -> float:
        billable_iops = max(0, iops - self.included_iops)
        return size_gb * self.per_gb_month + billable_iops * self.per_iops_month


class PricingTable(BaseModel):
    version: str
    currency: str = "USD"
    rates: Dict[str, VolumeRate]

    def monthly_cost(self, volume_type: Optional[str], size_gb: Optional[int], iops: Optional[int]) -> float:
        """Estimated monthly cost rounded to cents. Unknown volume types cost 0."""
        rate = self.rates.get(volume_type or "")
        if rate is None:
            return 0.0
        return round(rate.monthly_cost(size_gb or 0, iops or 0), 2)


# us-east-1 list prices
DEFAULT_PRICING = {
    "version": "2024-01-us-east-1",
    "currency": "USD",
    "rates": {
        "gp3": {"per_gb_month": 0.08, "per_iops_month": 0.005, "included_iops": 3000},
        "gp2": {"per_gb_month": 0.10},
        "io1": {"per_gb_month": 0.125, "per_iops_month": 0.065},
        "io2": {"per_gb_month": 0.125, "per_iops_month": 0.065},
        "st1": {"per_gb_month": 0.045},
        "sc1": {"per_gb_month": 0.025},
    },
}


def load_pricing_table(path: Optional[str] = None) -> PricingTable:
    """Load the rate table from a JSON file, or fall back to the built-in defaults."""
    if not path:
        return PricingTable.model_validate(DEFAULT_PRICING)
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        table = PricingTable.model_validate(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Could not load pricing table from {path}: {e}")
        raise ConfigurationError(f"Invalid pricing table at {path}") from e
    logger.info(f"Loaded pricing table version {table.version} from {path}")
    return table


@lru_cache()
def get_pricing_table() -> PricingTable:
    return load_pricing_table(settings.PRICING_TABLE_PATH)
