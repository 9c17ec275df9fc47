"""
Provider rate tables.

Every rate is a :class:`~decimal.Decimal` so the estimator can sum line items
without accumulating binary floating point error.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from compose2kube.core.options import CloudProvider
from compose2kube.exceptions import CostModelError

HOURS_PER_MONTH = Decimal("720")
CURRENCY = "USD"


class RateCard(BaseModel):
    """Unit prices for one provider/region."""

    provider: CloudProvider = Field(..., description="Provider.")
    region: str = Field(..., description="Region the card applies to.")
    cpu_per_hour: Decimal = Field(..., ge=0, description="Per vCPU-hour.")
    memory_gb_per_hour: Decimal = Field(..., ge=0, description="Per GiB-hour.")
    storage_gb_per_month: Decimal = Field(..., ge=0, description="Per GiB-month.")
    load_balancer_per_hour: Decimal = Field(..., ge=0, description="Per LB-hour.")
    egress_per_gb: Decimal = Field(..., ge=0, description="Per GiB transferred out.")
    cluster_management_per_hour: Decimal = Field(
        ..., ge=0, description="Flat control-plane fee per hour."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)


def _card(provider: CloudProvider, region: str, *rates: str) -> RateCard:
    cpu, mem, storage, lb, egress, mgmt = (Decimal(r) for r in rates)
    return RateCard(
        provider=provider,
        region=region,
        cpu_per_hour=cpu,
        memory_gb_per_hour=mem,
        storage_gb_per_month=storage,
        load_balancer_per_hour=lb,
        egress_per_gb=egress,
        cluster_management_per_hour=mgmt,
    )


# cpu/h, mem GiB/h, storage GiB/mo, LB/h, egress/GiB, management/h
_PROVIDER_RATES: dict[CloudProvider, tuple[str, ...]] = {
    CloudProvider.AWS: ("0.04", "0.004", "0.10", "0.025", "0.09", "0.10"),
    CloudProvider.GCP: ("0.038", "0.005", "0.08", "0.025", "0.085", "0.10"),
    CloudProvider.AZURE: ("0.042", "0.0045", "0.12", "0.022", "0.087", "0"),
    CloudProvider.DIGITALOCEAN: ("0.060", "0.009", "0.10", "0.012", "0.01", "0"),
    CloudProvider.ON_PREMISE: ("0.02", "0.002", "0.05", "0", "0", "0.02"),
}

# None means the provider prices every region the same way
PROVIDER_REGIONS: dict[CloudProvider, frozenset[str] | None] = {
    CloudProvider.AWS: frozenset(
        {"us-east-1", "us-east-2", "us-west-1", "us-west-2", "eu-west-1",
         "eu-central-1", "ap-southeast-1", "ap-northeast-1"}
    ),
    CloudProvider.GCP: frozenset(
        {"us-central1", "us-east1", "us-west1", "europe-west1", "europe-west4",
         "asia-east1", "asia-southeast1"}
    ),
    CloudProvider.AZURE: frozenset(
        {"eastus", "eastus2", "westus2", "westeurope", "northeurope",
         "southeastasia"}
    ),
    CloudProvider.DIGITALOCEAN: frozenset(
        {"nyc1", "nyc3", "sfo3", "ams3", "fra1", "lon1", "sgp1", "tor1"}
    ),
    CloudProvider.ON_PREMISE: None,
}  # fmt: skip

DEFAULT_RATE_CARD = _card(
    CloudProvider.AWS, "us-east-1", *_PROVIDER_RATES[CloudProvider.AWS]
)


def rate_card(provider: CloudProvider, region: str) -> RateCard:
    """
    Look up the rate card of a provider/region pair.

    Raises:
        CostModelError: If the provider does not price ``region``
    """
    regions = PROVIDER_REGIONS.get(provider)
    if provider not in _PROVIDER_RATES or (regions is not None and region not in regions):
        raise CostModelError(provider.value, region)
    return _card(provider, region, *_PROVIDER_RATES[provider])


__all__ = [
    "HOURS_PER_MONTH",
    "CURRENCY",
    "RateCard",
    "PROVIDER_REGIONS",
    "DEFAULT_RATE_CARD",
    "rate_card",
]
