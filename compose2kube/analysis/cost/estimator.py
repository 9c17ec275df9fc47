"""
Cost estimation over resolved generation policies.

All arithmetic stays in :class:`~decimal.Decimal` at full precision; only
:meth:`CostBreakdown.rounded` quantizes, for presentation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from compose2kube.analysis.patterns.models import PatternFamily
from compose2kube.analysis.policy.models import GenerationPolicy
from compose2kube.core.common.executor import map_ordered
from compose2kube.core.common.quantities import parse_cpu, parse_memory_gib
from compose2kube.core.diagnostics import Diagnostic, Stage, warn
from compose2kube.core.options import CloudProvider, PipelineOptions
from compose2kube.exceptions import CostModelError

from .rates import CURRENCY, DEFAULT_RATE_CARD, HOURS_PER_MONTH, RateCard, rate_card

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
BACKUP_FACTOR = Decimal("0.3")
MONITORING_PER_SERVICE = Decimal("5")
LOGGING_PER_SERVICE = Decimal("3")
_SPOT_PROVIDERS = frozenset({CloudProvider.AWS, CloudProvider.GCP, CloudProvider.AZURE})


class CostCategory(str, Enum):
    COMPUTE = "compute"
    STORAGE = "storage"
    NETWORK = "network"
    MANAGEMENT = "management"
    ADDITIONAL = "additional"


class CostLineItem(BaseModel):
    """One priced item of the monthly bill."""

    category: CostCategory = Field(..., description="Bill section.")
    name: str = Field(..., description="What is being priced.")
    service_id: Optional[str] = Field(None, description="Owning service, if any.")
    quantity: Decimal = Field(..., description="Billed quantity.")
    unit: str = Field(..., description="Quantity unit.")
    amount: Decimal = Field(..., ge=0, description="Monthly amount.")

    model_config = ConfigDict(extra="forbid", frozen=True)


class CostRecommendation(BaseModel):
    kind: str = Field(..., description="Recommendation type.")
    description: str = Field(..., description="What to do.")
    potential_savings: Decimal = Field(..., ge=0, description="Monthly savings.")
    effort: str = Field(..., description="low / medium / high.")

    model_config = ConfigDict(extra="forbid", frozen=True)


class CostBreakdown(BaseModel):
    """Monthly cost estimate with line items and totals."""

    provider: CloudProvider = Field(..., description="Provider priced.")
    region: str = Field(..., description="Region priced.")
    currency: str = Field(CURRENCY, description="ISO currency code.")
    line_items: list[CostLineItem] = Field(default_factory=list)
    total: Decimal = Field(Decimal("0"), ge=0, description="Sum of all line items.")
    recommendations: list[CostRecommendation] = Field(default_factory=list)
    fallback_rates: bool = Field(
        False, description="Default rates were used for a missing provider/region."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    def subtotal(self, category: CostCategory) -> Decimal:
        return sum(
            (i.amount for i in self.line_items if i.category is category), Decimal("0")
        )

    @property
    def compute(self) -> Decimal:
        return self.subtotal(CostCategory.COMPUTE)

    @property
    def storage(self) -> Decimal:
        return self.subtotal(CostCategory.STORAGE)

    @property
    def network(self) -> Decimal:
        return self.subtotal(CostCategory.NETWORK)

    def for_service(self, service_id: str) -> Decimal:
        return sum(
            (i.amount for i in self.line_items if i.service_id == service_id),
            Decimal("0"),
        )

    def rounded(self) -> CostBreakdown:
        """Copy with every amount quantized to cents (presentation only)."""

        def q(value: Decimal) -> Decimal:
            return value.quantize(_CENT, rounding=ROUND_HALF_UP)

        return self.model_copy(
            update={
                "line_items": [
                    i.model_copy(update={"amount": q(i.amount)}) for i in self.line_items
                ],
                "total": q(self.total),
                "recommendations": [
                    r.model_copy(update={"potential_savings": q(r.potential_savings)})
                    for r in self.recommendations
                ],
            }
        )


class CostEstimator:
    """Prices a set of generation policies against a provider rate card."""

    def __init__(self) -> None:
        self._logger = logger.getChild(self.__class__.__name__)

    def estimate(
        self,
        policies: Mapping[str, GenerationPolicy],
        provider: CloudProvider,
        region: str,
        options: PipelineOptions | None = None,
        diagnostics: list[Diagnostic] | None = None,
    ) -> CostBreakdown:
        """
        Estimate the monthly cost of running ``policies``.

        Args:
            policies: Resolved policies keyed by service id
            provider: Cloud provider to price
            region: Provider region
            options: Run options (egress heuristic, backup, monitoring)
            diagnostics: Sink for the rate fallback warning

        Returns:
            CostBreakdown whose line items sum exactly to ``total``
        """
        options = options or PipelineOptions()
        sink = diagnostics if diagnostics is not None else []

        fallback = False
        try:
            card = rate_card(provider, region)
        except CostModelError as exc:
            warn(
                self._logger,
                sink,
                Stage.COST,
                "rate-fallback",
                f"{exc}; using default {DEFAULT_RATE_CARD.provider.value}/"
                f"{DEFAULT_RATE_CARD.region} rates",
            )
            card = DEFAULT_RATE_CARD
            fallback = True

        ordered = [policies[k] for k in sorted(policies)]
        per_service = map_ordered(
            lambda p: self._service_items(p, card, options),
            ordered,
            options.max_workers,
        )
        items = [item for group in per_service for item in group]
        items.extend(self._shared_items(ordered, card, options))

        total = sum((i.amount for i in items), Decimal("0"))
        partial = CostBreakdown(
            provider=provider, region=region, line_items=items, total=total
        )
        breakdown = partial.model_copy(
            update={
                "recommendations": self._recommendations(partial, ordered, provider),
                "fallback_rates": fallback,
            }
        )
        self._logger.info(
            f"Estimated {provider.value}/{region}: "
            f"{breakdown.rounded().total} {breakdown.currency}/month "
            f"over {len(items)} line item(s)"
        )
        return breakdown

    # ----- line items --------------------------------------------------------

    @staticmethod
    def _service_items(
        policy: GenerationPolicy, card: RateCard, options: PipelineOptions
    ) -> list[CostLineItem]:
        sid = policy.service_id
        replicas = Decimal(policy.replicas.min)
        cpu = parse_cpu(policy.resources.cpu_request) * replicas
        memory = parse_memory_gib(policy.resources.memory_request) * replicas
        items = [
            CostLineItem(
                category=CostCategory.COMPUTE,
                name="cpu",
                service_id=sid,
                quantity=cpu,
                unit="vCPU",
                amount=cpu * card.cpu_per_hour * HOURS_PER_MONTH,
            ),
            CostLineItem(
                category=CostCategory.COMPUTE,
                name="memory",
                service_id=sid,
                quantity=memory,
                unit="GiB",
                amount=memory * card.memory_gb_per_hour * HOURS_PER_MONTH,
            ),
        ]

        storage = sum(
            (parse_memory_gib(v.size) for v in policy.volumes), Decimal("0")
        )
        if storage:
            volume_cost = storage * card.storage_gb_per_month
            items.append(
                CostLineItem(
                    category=CostCategory.STORAGE,
                    name="persistent-volumes",
                    service_id=sid,
                    quantity=storage,
                    unit="GiB",
                    amount=volume_cost,
                )
            )
            if options.backup:
                items.append(
                    CostLineItem(
                        category=CostCategory.STORAGE,
                        name="backup",
                        service_id=sid,
                        quantity=storage * BACKUP_FACTOR,
                        unit="GiB",
                        amount=volume_cost * BACKUP_FACTOR,
                    )
                )

        if policy.expose_externally:
            egress = Decimal(str(options.egress_gb_per_exposed_service))
            items.append(
                CostLineItem(
                    category=CostCategory.NETWORK,
                    name="load-balancer",
                    service_id=sid,
                    quantity=HOURS_PER_MONTH,
                    unit="hours",
                    amount=card.load_balancer_per_hour * HOURS_PER_MONTH,
                )
            )
            items.append(
                CostLineItem(
                    category=CostCategory.NETWORK,
                    name="egress",
                    service_id=sid,
                    quantity=egress,
                    unit="GiB",
                    amount=egress * card.egress_per_gb,
                )
            )
        return items

    @staticmethod
    def _shared_items(
        policies: list[GenerationPolicy], card: RateCard, options: PipelineOptions
    ) -> list[CostLineItem]:
        items = [
            CostLineItem(
                category=CostCategory.MANAGEMENT,
                name="cluster-management",
                quantity=HOURS_PER_MONTH,
                unit="hours",
                amount=card.cluster_management_per_hour * HOURS_PER_MONTH,
            )
        ]
        if options.monitoring and policies:
            count = Decimal(len(policies))
            items.append(
                CostLineItem(
                    category=CostCategory.ADDITIONAL,
                    name="monitoring",
                    quantity=count,
                    unit="services",
                    amount=count * MONITORING_PER_SERVICE,
                )
            )
            items.append(
                CostLineItem(
                    category=CostCategory.ADDITIONAL,
                    name="logging",
                    quantity=count,
                    unit="services",
                    amount=count * LOGGING_PER_SERVICE,
                )
            )
        return items

    # ----- recommendations ---------------------------------------------------

    @staticmethod
    def _recommendations(
        breakdown: CostBreakdown,
        policies: list[GenerationPolicy],
        provider: CloudProvider,
    ) -> list[CostRecommendation]:
        compute = breakdown.compute
        storage = breakdown.storage
        recs: list[CostRecommendation] = []
        if compute > 200:
            recs.append(
                CostRecommendation(
                    kind="rightsizing",
                    description="Right-size workloads; requests may be over-provisioned.",
                    potential_savings=compute * Decimal("0.2"),
                    effort="medium",
                )
            )
        if provider in _SPOT_PROVIDERS and compute > 0:
            recs.append(
                CostRecommendation(
                    kind="spot",
                    description="Run non-critical workloads on spot/preemptible nodes.",
                    potential_savings=compute * Decimal("0.6"),
                    effort="high",
                )
            )
        if any(p.replicas.max > p.replicas.min for p in policies):
            recs.append(
                CostRecommendation(
                    kind="autoscaling",
                    description="Scale replicas with load using horizontal autoscaling.",
                    potential_savings=compute * Decimal("0.15"),
                    effort="low",
                )
            )
        if storage > 50:
            recs.append(
                CostRecommendation(
                    kind="storage-tiering",
                    description="Move cold data to a cheaper storage class.",
                    potential_savings=storage * Decimal("0.3"),
                    effort="medium",
                )
            )
        if any(p.family is PatternFamily.DATABASE for p in policies):
            recs.append(
                CostRecommendation(
                    kind="reserved",
                    description="Reserve capacity for long-running data stores.",
                    potential_savings=compute * Decimal("0.4"),
                    effort="low",
                )
            )
        return recs


__all__ = [
    "CostCategory",
    "CostLineItem",
    "CostRecommendation",
    "CostBreakdown",
    "CostEstimator",
]
