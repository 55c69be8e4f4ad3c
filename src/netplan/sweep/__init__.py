"""Scenario sweep across network sizes and its tabular reports."""

from netplan.sweep.controller import Scenario, ScenarioFailure, SweepResult, sweep
