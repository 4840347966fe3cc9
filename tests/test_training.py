"""
Tests for batched training and model persistence

Validates sample validation, the single-writer flag, per-component
reporting, and save/load of every component's artifact.
"""

import json
import threading

import pytest

from fraud_ensemble.analyzers.amount import AmountAnalyzer
from fraud_ensemble.components.catalog import ALL_IDS
from fraud_ensemble.components.registry import ComponentRegistry
from fraud_ensemble.errors import PersistenceError, TrainingDataError, TrainingInProgressError
from fraud_ensemble.inference.orchestrator import EnsembleOrchestrator
from fraud_ensemble.schema import TrainingSample
from fraud_ensemble.training.model_store import ModelStore, artifact_name
from fraud_ensemble.training.pipeline import TrainingPipeline, coerce_sample, fraud_share, validate_samples
from fraud_ensemble.training.synthetic import SyntheticContextGenerator


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def pipeline(registry):
    return TrainingPipeline(registry, batch_size=20, min_samples=10, generator=SyntheticContextGenerator(seed=42))


@pytest.fixture
def single_component_pipeline():
    registry = ComponentRegistry([AmountAnalyzer(hyperparameters={"max_iter": 20})])
    return TrainingPipeline(registry, batch_size=50, min_samples=10)


@pytest.fixture
def store(tmp_path):
    return ModelStore(str(tmp_path / "models"))


# ============================================================================
# TEST 1: Sample validation
# ============================================================================

@pytest.mark.unit
def test_coerce_sample_formats(fraud_input):
    nested = coerce_sample({"input": {"amount": 10.0}, "label": 0.2})
    flat = coerce_sample({"amount": 10.0, "channel": "online", "label": 0.9})
    same = coerce_sample(TrainingSample(input=fraud_input, label=1.0))

    assert nested.input.amount == 10.0 and nested.label == 0.2
    assert flat.input.channel == "online" and flat.label == 0.9
    assert same.input is fraud_input


@pytest.mark.unit
def test_too_few_samples_rejected(pipeline, registry, sample_factory):
    with pytest.raises(TrainingDataError, match="Insufficient"):
        pipeline.train_all(sample_factory(5), verbose=False)
    assert not any(c.is_trained for c in registry.iter_components()), "No model may change on rejection"


@pytest.mark.unit
def test_malformed_sample_rejected(sample_factory):
    samples = list(sample_factory(12))
    samples.append({"amount": -5.0, "label": 0.5})
    with pytest.raises(TrainingDataError, match="index 12"):
        validate_samples(samples, min_samples=10)


@pytest.mark.unit
def test_fraud_share(sample_factory):
    samples = sample_factory(40, fraud_rate=0.5)
    share = fraud_share(samples)
    assert 0.2 < share < 0.8
    assert fraud_share([]) == 0.0


@pytest.mark.unit
def test_skewed_labels_warn(single_component_pipeline, sample_factory):
    with pytest.warns(UserWarning, match="Skewed training labels"):
        single_component_pipeline.train_all(sample_factory(20, fraud_rate=0.0), verbose=False)


# ============================================================================
# TEST 2: Single writer
# ============================================================================

@pytest.mark.unit
def test_overlapping_training_rejected(single_component_pipeline, sample_factory):
    pipeline = single_component_pipeline
    samples = sample_factory(20)
    entered = threading.Event()
    release = threading.Event()
    component = pipeline.registry.get("amount_analyzer")
    original_train = component.train

    def blocking_train(*args, **kwargs):
        entered.set()
        release.wait(timeout=10)
        return original_train(*args, **kwargs)

    component.train = blocking_train
    worker = threading.Thread(target=pipeline.train_all, args=(samples,), kwargs={"verbose": False})
    worker.start()
    try:
        assert entered.wait(timeout=10)
        assert pipeline.is_training
        with pytest.raises(TrainingInProgressError):
            pipeline.train_all(samples, verbose=False)
    finally:
        release.set()
        worker.join(timeout=30)

    assert not pipeline.is_training
    assert component.is_trained


# ============================================================================
# TEST 3: Full training run
# ============================================================================

@pytest.mark.integration
def test_train_all_components(pipeline, registry, labeled_samples):
    report = pipeline.train_all(labeled_samples, verbose=False)

    assert report.samples == 40
    assert report.batches == 2
    assert report.successful_components == 23, report.to_frame().to_string()
    assert report.failed_components == 0
    assert all(c.is_trained for c in registry.iter_components())

    frame = report.to_frame()
    assert len(frame) == 23
    assert list(frame["tier"]) == sorted(frame["tier"])
    assert frame["success"].all()


@pytest.mark.integration
def test_failed_component_is_reported_not_raised(pipeline, registry, labeled_samples, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("cannot fit")

    monkeypatch.setattr(registry.get("device_analyzer"), "train", explode)
    report = pipeline.train_all(labeled_samples, verbose=False)

    summary = report.per_component["device_analyzer"]
    assert not summary.success
    assert summary.failed_batches == 2
    assert "cannot fit" in summary.last_error
    assert report.successful_components == 22


@pytest.mark.integration
def test_trained_ensemble_scores_transactions(pipeline, registry, labeled_samples, fraud_input, safe_input):
    pipeline.train_all(labeled_samples, verbose=False)

    with EnsembleOrchestrator(registry, request_timeout_ms=30000) as orchestrator:
        for analysis_input in (fraud_input, safe_input):
            decision = orchestrator.analyze_transaction(analysis_input)
            assert 0.0 <= decision.fraud_score <= 1.0
            assert decision.audit_trail.decision_method == "learned"
            assert not decision.heuristic
            assert all(v.is_trained for v in decision.version_manifest.values())


# ============================================================================
# TEST 4: Persistence
# ============================================================================

@pytest.mark.unit
def test_save_and_load_all(store, registry, small_config):
    manifest = store.save_all(registry)

    assert manifest["component_count"] == 23
    assert store.manifest_path.exists()
    assert (store.models_dir / "tier1_amount_analyzer.json").exists()
    assert (store.models_dir / "tier4_fraud_decision.json").exists()

    report = store.load_all(ComponentRegistry.default(small_config))
    assert report.all_loaded
    assert len(report.loaded) == 23


def learned_score(component, analysis_input, upstream):
    """Score from whichever entry point the component's tier uses; fails on a heuristic fallback."""
    tier1, tier2, tier3 = upstream
    if component.tier == 4:
        decision = component.decide(analysis_input, tier1, tier2, tier3)
        assert decision.audit_trail.decision_method == "learned"
        return decision.fraud_score
    if component.tier == 1:
        result = component.analyze(analysis_input)
    elif component.tier == 2:
        result = component.analyze(analysis_input, tier1)
    else:
        result = component.analyze(analysis_input, tier1, tier2)
    assert not result.heuristic, result.error
    return result.score


@pytest.mark.integration
def test_restored_registry_is_fully_trained(round_trip):
    _, restored, report = round_trip

    assert report.all_loaded
    assert all(c.is_trained for c in restored.iter_components())


@pytest.mark.integration
@pytest.mark.parametrize("component_id", ALL_IDS)
def test_trained_weights_round_trip(round_trip, fraud_input, component_id):
    trained, restored, _ = round_trip
    tier1 = {c.component_id: c.analyze(fraud_input) for c in trained.tier1}
    tier2 = {c.component_id: c.analyze(fraud_input, tier1) for c in trained.tier2}
    tier3 = {c.component_id: c.analyze(fraud_input, tier1, tier2) for c in trained.tier3}
    upstream = (tier1, tier2, tier3)

    before = learned_score(trained.get(component_id), fraud_input, upstream)
    after = learned_score(restored.get(component_id), fraud_input, upstream)
    assert after == pytest.approx(before)


@pytest.mark.unit
def test_missing_artifact_is_skipped(store, registry, small_config):
    store.save_all(registry)
    amount = registry.get("amount_analyzer")
    (store.models_dir / artifact_name(amount)).unlink()

    report = store.load_all(ComponentRegistry.default(small_config))
    assert report.skipped == ["amount_analyzer"]
    assert not report.all_loaded
    assert len(report.loaded) == 22


@pytest.mark.unit
def test_corrupt_artifact_is_reported(store, registry, small_config):
    store.save_all(registry)
    path = store.models_dir / "tier2_behavior_combiner.json"
    path.write_text("{not json")

    fresh = ComponentRegistry.default(small_config)
    report = store.load_all(fresh)
    assert "behavior_combiner" in report.failed
    assert len(report.loaded) == 22

    with pytest.raises(PersistenceError):
        store.load_component(fresh.get("behavior_combiner"))


@pytest.mark.unit
def test_artifact_for_wrong_component_is_reported(store, registry, small_config):
    store.save_all(registry)
    amount_blob = json.loads((store.models_dir / "tier1_amount_analyzer.json").read_text())
    (store.models_dir / "tier1_location_analyzer.json").write_text(json.dumps(amount_blob))

    report = store.load_all(ComponentRegistry.default(small_config))
    assert "location_analyzer" in report.failed


@pytest.mark.unit
def test_load_without_manifest_uses_default_names(store, registry, small_config):
    store.save_all(registry)
    store.manifest_path.unlink()

    report = store.load_all(ComponentRegistry.default(small_config))
    assert len(report.loaded) == 23


@pytest.mark.unit
def test_no_temporary_files_left_behind(store, registry):
    store.save_all(registry)
    leftovers = [p.name for p in store.models_dir.iterdir() if p.name.endswith(".tmp")]
    assert leftovers == []
