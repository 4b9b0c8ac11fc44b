from contextlib import contextmanager
from datetime import datetime
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from data.database import Experiment, Variant, ExperimentResult, ResultMetric, utcnow, as_naive_utc
from models.experiments import ExperimentCreate, ExperimentUpdate, VariantSpec
from services.cache import CacheClient
from services.errors import DuplicateExperimentError, InvalidExperimentError, NotFoundError, StoreError
import logging

logger = logging.getLogger(__name__)

# Maximum number of times a racing insert is retried before giving up
MAX_RETRIES = 3

# Columns that may not be cleared through a partial update
_REQUIRED_FIELDS = {"name", "type", "status", "target_groups", "specific_user_ids", "goals"}


class ExperimentStore:
    """
    The only path from the engine to persistence.

    Reads go through the cache first. Writes of an assignment rely on the
    (experiment_id, user_id) unique constraint: whichever insert lands first
    is the stored variant, and every later caller reads that one back.
    """

    def __init__(self, db: Session, cache: CacheClient):
        self.db = db
        self.cache = cache

    @contextmanager
    def _store_errors(self, action: str):
        """Roll back and re-raise any database failure as StoreError."""
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Store failure while trying to %s.", action)
            raise StoreError(f"Unable to {action}.") from exc

    # --- Experiments ---

    def find_active_experiment_by_name(self, name: str, experiment_types=None, now: datetime | None = None):
        """Experiment named `name` if it is active and in its date window, else None."""
        now = as_naive_utc(now) or utcnow()

        experiment = self.cache.get_experiment(name)
        if experiment is None:
            with self._store_errors("load experiment"):
                experiment = self.db.query(Experiment).filter(Experiment.name == name).one_or_none()
                if experiment is None:
                    logger.debug("Experiment %s does not exist.", name)
                    return None
                self.cache.set_experiment(experiment)
            logger.debug("find_active_experiment_by_name %s cache miss", name)
        else:
            logger.debug("find_active_experiment_by_name %s cache hit", name)

        if experiment_types and experiment.type not in experiment_types:
            return None
        if not experiment.is_live(now):
            logger.debug("Experiment %s is %s or outside its window.", name, experiment.status)
            return None
        return experiment

    def get_experiment(self, experiment_id: int) -> Experiment:
        with self._store_errors("load experiment"):
            experiment = self.db.query(Experiment).filter(Experiment.id == experiment_id).one_or_none()
        if experiment is None:
            raise NotFoundError(f"Experiment ID {experiment_id} not found.")
        return experiment

    def list_experiments(self, status: str | None = None) -> list[Experiment]:
        with self._store_errors("list experiments"):
            query = self.db.query(Experiment)
            if status:
                query = query.filter(Experiment.status == status)
            return query.order_by(Experiment.id).all()

    def create_experiment(self, data: ExperimentCreate) -> Experiment:
        """Creates a new experiment and its ordered variants."""
        with self._store_errors("create experiment"):
            if self.db.query(Experiment.id).filter(Experiment.name == data.name).first() is not None:
                raise DuplicateExperimentError(f"Experiment {data.name} already exists.")

            experiment = Experiment(
                name=data.name,
                description=data.description,
                type=data.type,
                status=data.status,
                rollout_percentage=data.rollout_percentage,
                target_groups=list(data.target_groups),
                specific_user_ids=list(data.specific_user_ids),
                goals=[goal.model_dump() for goal in data.goals],
                start_date=as_naive_utc(data.start_date),
                end_date=as_naive_utc(data.end_date),
            )
            experiment.variants = _build_variants(data.variants)
            self.db.add(experiment)
            try:
                self.db.commit()
            except IntegrityError as exc:
                # A concurrent create won the unique name
                self.db.rollback()
                raise DuplicateExperimentError(f"Experiment {data.name} already exists.") from exc
            self.db.refresh(experiment)

        self.cache.invalidate_experiment(experiment.name)
        logger.info("create new experiment %s success with experiment id: %d", experiment.name, experiment.id)
        return experiment

    def update_experiment(self, experiment_id: int, patch: ExperimentUpdate) -> Experiment:
        """Applies the fields set on `patch`. Stored assignments are never touched."""
        changes = patch.model_dump(exclude_unset=True)

        with self._store_errors("update experiment"):
            experiment = self.db.query(Experiment).filter(Experiment.id == experiment_id).one_or_none()
            if experiment is None:
                raise NotFoundError(f"Experiment ID {experiment_id} not found.")
            old_name = experiment.name

            for key, value in changes.items():
                if key == "variants":
                    if patch.variants is not None:
                        experiment.variants = _build_variants(patch.variants)
                    continue
                if value is None and key in _REQUIRED_FIELDS:
                    continue
                if key in ("start_date", "end_date"):
                    value = as_naive_utc(value)
                setattr(experiment, key, value)

            if experiment.start_date and experiment.end_date and experiment.end_date <= experiment.start_date:
                self.db.rollback()
                raise InvalidExperimentError("end_date must be after start_date")

            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise DuplicateExperimentError(f"Experiment {experiment.name} already exists.") from exc
            self.db.refresh(experiment)

        self.cache.invalidate_experiment(old_name)
        self.cache.invalidate_experiment(experiment.name)
        logger.info("update experiment %d success, fields: %s", experiment_id, sorted(changes))
        return experiment

    # --- Results ---

    def _query_result(self, experiment_id: int, user_id: str) -> ExperimentResult | None:
        return self.db.query(ExperimentResult).filter(
            ExperimentResult.experiment_id == experiment_id,
            ExperimentResult.user_id == user_id
        ).one_or_none()

    def find_result(self, experiment_id: int, user_id: str) -> ExperimentResult | None:
        result = self.cache.get_result(experiment_id, user_id)
        if result is not None:
            logger.debug("find_result %d/%s cache hit", experiment_id, user_id)
            return result

        with self._store_errors("load result"):
            result = self._query_result(experiment_id, user_id)
        if result is not None:
            self.cache.set_result(result)
        return result

    def upsert_result(self, experiment_id: int, user_id: str, variant: str) -> ExperimentResult:
        """
        Insert-if-absent of the user's variant.

        Returns the stored result, which carries the variant that was
        persisted first. That may differ from `variant` when a concurrent
        request won the race.
        """
        with self._store_errors("store assignment"):
            for attempt in range(MAX_RETRIES):
                existing = self._query_result(experiment_id, user_id)
                if existing is not None and existing.variant is not None:
                    self.cache.set_result(existing)
                    return existing

                try:
                    if existing is None:
                        self.db.add(ExperimentResult(
                            experiment_id=experiment_id,
                            user_id=user_id,
                            variant=variant,
                            assigned_at=utcnow()
                        ))
                    else:
                        # Claim a metric-only record, only while its variant is still unset
                        self.db.query(ExperimentResult).filter(
                            ExperimentResult.id == existing.id,
                            ExperimentResult.variant.is_(None)
                        ).update(
                            {ExperimentResult.variant: variant, ExperimentResult.assigned_at: utcnow()},
                            synchronize_session=False
                        )
                    self.db.commit()
                except IntegrityError:
                    self.db.rollback()
                    logger.warning("RACE DETECTED: IntegrityError on user %s (EID %d). Retrying (Attempt %d/%d)...",
                                   user_id, experiment_id, attempt + 1, MAX_RETRIES)
                    continue

                self.db.expire_all()
                stored = self._query_result(experiment_id, user_id)
                if stored is not None and stored.variant is not None:
                    if stored.variant != variant:
                        logger.info("User %s (EID %d) already held %s, keeping it over %s.",
                                    user_id, experiment_id, stored.variant, variant)
                    self.cache.set_result(stored)
                    return stored

        logger.warning("Failed to store assignment for user %s after %d attempts.", user_id, MAX_RETRIES)
        raise StoreError(f"Experiment ID {experiment_id} unable to store assignment.")

    def _get_or_create_result(self, experiment_id: int, user_id: str) -> ExperimentResult:
        for attempt in range(MAX_RETRIES):
            result = self._query_result(experiment_id, user_id)
            if result is not None:
                return result
            try:
                result = ExperimentResult(experiment_id=experiment_id, user_id=user_id)
                self.db.add(result)
                self.db.commit()
                logger.info("Created metric-only result for user %s (EID %d).", user_id, experiment_id)
                return result
            except IntegrityError:
                self.db.rollback()
                logger.warning("RACE DETECTED: concurrent result insert for user %s (EID %d), attempt %d/%d.",
                               user_id, experiment_id, attempt + 1, MAX_RETRIES)
        raise StoreError(f"Experiment ID {experiment_id} unable to create result for user {user_id}.")

    def append_metric(self, experiment_id: int, user_id: str, name: str, value: float,
                      recorded_at: datetime | None = None) -> ExperimentResult:
        """Appends one observation, creating a bare result when none exists."""
        with self._store_errors("append metric"):
            result = self._get_or_create_result(experiment_id, user_id)
            result.metrics.append(ResultMetric(
                name=name,
                value=float(value),
                recorded_at=as_naive_utc(recorded_at) or utcnow()
            ))
            self.db.commit()
            self.db.refresh(result)
        return result

    def aggregate_results_by_variant(self, experiment_id: int) -> list[dict]:
        """[{variant, user_count, metrics: {name: {count, total, mean}}}] per assigned variant."""
        with self._store_errors("aggregate results"):
            user_counts = self.db.query(
                ExperimentResult.variant,
                func.count(ExperimentResult.id)
            ).filter(
                ExperimentResult.experiment_id == experiment_id,
                ExperimentResult.variant.isnot(None)
            ).group_by(ExperimentResult.variant).all()

            metric_rows = self.db.query(
                ExperimentResult.variant,
                ResultMetric.name,
                func.count(ResultMetric.id),
                func.sum(ResultMetric.value),
                func.avg(ResultMetric.value)
            ).join(
                ResultMetric, ResultMetric.result_id == ExperimentResult.id
            ).filter(
                ExperimentResult.experiment_id == experiment_id,
                ExperimentResult.variant.isnot(None)
            ).group_by(ExperimentResult.variant, ResultMetric.name).all()

        aggregates = {
            variant: {"variant": variant, "user_count": count, "metrics": {}}
            for variant, count in user_counts
        }
        for variant, name, count, total, mean in metric_rows:
            aggregates[variant]["metrics"][name] = {
                "count": count,
                "total": float(total or 0),
                "mean": float(mean or 0),
            }
        return list(aggregates.values())


def _build_variants(specs: list[VariantSpec]) -> list[Variant]:
    return [
        Variant(position=position, name=spec.name, weight=spec.weight, config=dict(spec.config))
        for position, spec in enumerate(specs)
    ]
