"""Tests for backtester/orchestrator/experiment.py."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from backtester.core.config import BrokerConfig, reset_settings
from backtester.data.exceptions import InputError
from backtester.orchestrator.experiment import (
    DatasetSpec,
    ExperimentConfig,
    ParameterSpace,
    StrategySpec,
    load_datasets,
    load_experiment,
)
from backtester.strategy.library import SMACrossover

_CSV = "datetime,open,high,low,close,volume\n2024-01-02,1,1,1,1,1\n2024-01-03,2,2,2,2,1\n"


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    reset_settings()


class TestStrategySpec:
    def test_display_from_params(self) -> None:
        spec = StrategySpec(name="sma_crossover", params={"slow": 30, "fast": 10})
        assert spec.display == "sma_crossover(fast=10,slow=30)"

    def test_label_overrides_display(self) -> None:
        spec = StrategySpec(name="sma_crossover", label="trend")
        assert spec.display == "trend"

    def test_build_returns_fresh_strategy(self) -> None:
        spec = StrategySpec(name="sma_crossover", params={"fast": 3, "slow": 7})
        first, second = spec.build(), spec.build()
        assert isinstance(first, SMACrossover)
        assert first is not second


class TestParameterSpace:
    def test_size_and_combinations(self) -> None:
        space = ParameterSpace(
            strategy={"fast": [5, 10], "slow": [20, 30]},
            broker={"slippage.bps": [0, 5]},
        )
        assert space.size == 8
        combos = list(space.combinations())
        assert len(combos) == 8
        assert combos[0] == {"strategy.fast": 5, "strategy.slow": 20, "broker.slippage.bps": 0}
        assert combos[1] == {"strategy.fast": 5, "strategy.slow": 20, "broker.slippage.bps": 5}

    def test_combinations_are_restartable(self) -> None:
        space = ParameterSpace(strategy={"fast": [5, 10]})
        assert list(space.combinations()) == list(space.combinations())

    def test_empty_space(self) -> None:
        space = ParameterSpace()
        assert space.size == 0
        assert list(space.combinations()) == []

    def test_empty_values_rejected(self) -> None:
        with pytest.raises(ValidationError, match="no candidate values"):
            ParameterSpace(strategy={"fast": []})


class TestExperimentConfig:
    def test_default_broker_comes_from_settings(self) -> None:
        cfg = ExperimentConfig(datasets=[DatasetSpec(path="x.csv")])
        assert len(cfg.brokers) == 1

    def test_duplicate_broker_names_rejected(self) -> None:
        with pytest.raises(ValidationError, match="duplicate broker"):
            ExperimentConfig(
                datasets=[DatasetSpec(path="x.csv")],
                brokers=[BrokerConfig(name="a"), BrokerConfig(name="a")],
            )


class TestLoadExperiment:
    def test_loads_and_resolves_relative_paths(self, tmp_path: Path) -> None:
        config_file = tmp_path / "exp.yaml"
        config_file.write_text(yaml.dump({
            "name": "sweep",
            "datasets": [{"path": "data/AAPL.csv"}, {"path": "/abs/MSFT.csv"}],
            "strategies": [{"name": "buy_and_hold", "params": {"quantity": 5}}],
            "brokers": [
                {"name": "zero"},
                {"name": "retail", "commission": {"kind": "percentage", "rate": "0.001"}},
            ],
            "tuning": {
                "strategy": {"name": "sma_crossover"},
                "space": {"strategy": {"fast": [5, 10]}},
                "search": "random",
                "samples": 3,
            },
        }))

        exp = load_experiment(config_file)

        assert exp.name == "sweep"
        assert exp.datasets[0].path == str(tmp_path / "data/AAPL.csv")
        assert exp.datasets[1].path == "/abs/MSFT.csv"
        assert exp.brokers[1].commission.rate == Decimal("0.001")
        assert exp.tuning is not None
        assert exp.tuning.search == "random"
        assert exp.tuning.space.size == 2

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(InputError, match="not found"):
            load_experiment(tmp_path / "nope.yaml")

    def test_invalid_experiment(self, tmp_path: Path) -> None:
        config_file = tmp_path / "exp.yaml"
        config_file.write_text(yaml.dump({"strategies": [{"name": "buy_and_hold"}]}))
        with pytest.raises(InputError, match="invalid experiment"):
            load_experiment(config_file)


class TestLoadDatasets:
    def test_file_and_folder(self, tmp_path: Path) -> None:
        (tmp_path / "AAPL.csv").write_text(_CSV)
        folder = tmp_path / "more"
        folder.mkdir()
        (folder / "MSFT.csv").write_text(_CSV)
        (folder / "GOOG.csv").write_text(_CSV)

        loaded = load_datasets([
            DatasetSpec(path=str(tmp_path / "AAPL.csv"), name="apple"),
            DatasetSpec(path=str(folder)),
        ])

        assert list(loaded) == ["apple", "GOOG", "MSFT"]
        assert loaded["apple"].symbol == "AAPL"

    def test_symbol_override(self, tmp_path: Path) -> None:
        (tmp_path / "prices.csv").write_text(_CSV)
        loaded = load_datasets([DatasetSpec(path=str(tmp_path / "prices.csv"), symbol="IBM")])
        assert list(loaded) == ["IBM"]

    def test_duplicate_labels(self, tmp_path: Path) -> None:
        (tmp_path / "AAPL.csv").write_text(_CSV)
        spec = DatasetSpec(path=str(tmp_path / "AAPL.csv"))
        with pytest.raises(InputError, match="duplicate dataset label"):
            load_datasets([spec, spec])

    def test_missing_file_is_input_error(self, tmp_path: Path) -> None:
        with pytest.raises(InputError):
            load_datasets([DatasetSpec(path=str(tmp_path / "missing.csv"))])
