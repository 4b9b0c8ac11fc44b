from data.database import utcnow
from models.results import ExperimentResultsSummary, VariantResult, MetricSummary
from services.store import ExperimentStore
import logging

logger = logging.getLogger(__name__)

def calculate_summary(store: ExperimentStore, experiment_id: int) -> ExperimentResultsSummary:
    """
    Per-variant user counts and metric aggregates of one experiment.
    """
    # 1. Check if experiment exists
    experiment = store.get_experiment(experiment_id)

    # 2. Aggregate assigned users and their metrics by variant
    aggregates = store.aggregate_results_by_variant(experiment_id)

    # 3. Every defined variant is reported, even with no users yet
    variant_data: dict[str, VariantResult] = {
        variant.name: VariantResult(user_count=0) for variant in experiment.variants
    }
    for row in aggregates:
        variant_data[row["variant"]] = VariantResult(
            user_count=row["user_count"],
            metrics={name: MetricSummary(**summary) for name, summary in row["metrics"].items()}
        )

    logger.debug("calculate summary for %s: %d variants", experiment.name, len(variant_data))

    return ExperimentResultsSummary(
        experiment_id=experiment.id,
        experiment_name=experiment.name,
        report_generated_at=utcnow(),
        goals=experiment.goals or [],
        variant_data=variant_data
    )
