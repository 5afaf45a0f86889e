from __future__ import annotations

import pytest

from orelens.metrics.engine import MetricsEngine, confidence_for
from orelens.metrics.patterns import TROY_OUNCES_PER_TONNE, default_pattern_table
from orelens.schemas.records import MetricKind

SCENARIO = (
    "The project has an after-tax NPV of $485.3 million, an IRR of 22.4%, "
    "initial capital of $320 million and a mine life of 12 years."
)


def _engine() -> MetricsEngine:
    return MetricsEngine(default_pattern_table(), acceptance_threshold=0.30)


def test_scenario_four_metrics() -> None:
    res = _engine().extract(SCENARIO)
    values = {k: m.value for k, m in res.metrics.items()}
    assert values == {
        MetricKind.NPV: pytest.approx(485.3),
        MetricKind.IRR: pytest.approx(22.4),
        MetricKind.CAPEX: pytest.approx(320.0),
        MetricKind.MINE_LIFE_YEARS: pytest.approx(12.0),
    }
    assert res.kinds_attempted == 11
    assert res.coverage_fraction == pytest.approx(4 / 11)
    assert res.sufficient
    assert res.confidence == pytest.approx(0.7)


def test_billion_scales_to_millions() -> None:
    engine = _engine()
    res = engine.extract("The after-tax NPV of US$1.2 billion was estimated.")
    assert res.metric_value(MetricKind.NPV) == pytest.approx(1200.0)
    res = engine.extract("Initial capex: $2.5B")
    assert res.metric_value(MetricKind.CAPEX) == pytest.approx(2500.0)


def test_irr_above_100_percent_rejected() -> None:
    res = _engine().extract("The project shows an IRR of 150% at spot prices.")
    assert MetricKind.IRR not in res.metrics


def test_first_matching_pattern_decides() -> None:
    # The after-tax figure matches first and is implausible; the later IRR is not used.
    res = _engine().extract("After-tax IRR of 150% and a pre-tax IRR of 20%.")
    assert MetricKind.IRR not in res.metrics


def test_capex_plausibility_bound() -> None:
    res = _engine().extract("Initial capital of $25 billion.")
    assert MetricKind.CAPEX not in res.metrics


def test_dollar_totals_need_a_scale_word() -> None:
    engine = _engine()
    res = engine.extract("The after-tax NPV at US$1,800/oz gold is $485.3 million.")
    assert res.metric_value(MetricKind.NPV) == pytest.approx(485.3)
    res = engine.extract("Initial capital costs of $45 per tonne of annual capacity.")
    assert MetricKind.CAPEX not in res.metrics
    res = engine.extract("The NPV is $250,000 at a 5% discount rate.")
    assert MetricKind.NPV not in res.metrics


def test_lowercase_mt_is_metric_tons() -> None:
    engine = _engine()
    res = engine.extract("The mill will produce 150,000 mt per year of concentrate.")
    metric = res.metrics[MetricKind.ANNUAL_PRODUCTION]
    assert metric.value == pytest.approx(150_000.0)
    assert metric.unit == "t/y"
    res = engine.extract("Annual production of 1.5 Mtpa of ore.")
    assert res.metric_value(MetricKind.ANNUAL_PRODUCTION) == pytest.approx(1_500_000.0)


def test_production_ounces_converted_to_tonnes() -> None:
    res = _engine().extract("Average annual production of 150,000 ounces of gold over the first five years.")
    metric = res.metrics[MetricKind.ANNUAL_PRODUCTION]
    assert metric.value == pytest.approx(150_000 / TROY_OUNCES_PER_TONNE)
    assert metric.unit == "t/y"


def test_resource_tonnage_and_grade() -> None:
    res = _engine().extract("Measured and Indicated Mineral Resources of 45.2 Mt at 1.2 g/t Au.")
    assert res.metric_value(MetricKind.RESOURCE_TONNAGE) == pytest.approx(45_200_000)
    grade = res.metrics[MetricKind.RESOURCE_GRADE]
    assert grade.value == pytest.approx(1.2)
    assert grade.unit == "g/t"


def test_aisc_per_ounce_not_converted() -> None:
    res = _engine().extract("All-in sustaining costs of $1,050 per ounce over the life of mine.")
    aisc = res.metrics[MetricKind.AISC]
    assert aisc.value == pytest.approx(1050.0)
    assert aisc.unit == "USD/oz"


def test_no_metrics_and_bad_input() -> None:
    engine = _engine()
    for text in ("", "Nothing to see in this quarterly letter to shareholders.", None, 42):
        res = engine.extract(text)
        assert res.metrics == {}
        assert res.coverage_fraction == 0
        assert res.confidence == 0
        assert not res.sufficient


def test_confidence_bounded_and_monotonic() -> None:
    values = [confidence_for(n) for n in range(0, 25)]
    assert all(0.0 <= v <= 1.0 for v in values)
    assert values == sorted(values)
    assert values[0] == 0.0
    assert max(values) == pytest.approx(0.95)


def test_threshold_is_configurable() -> None:
    strict = MetricsEngine(default_pattern_table(), acceptance_threshold=0.5)
    assert not strict.extract(SCENARIO).sufficient
    with pytest.raises(ValueError):
        MetricsEngine(default_pattern_table(), acceptance_threshold=1.5)


def test_pattern_table_is_read_only() -> None:
    table = default_pattern_table()
    with pytest.raises(TypeError):
        table.patterns[MetricKind.NPV] = ()  # type: ignore[index]
