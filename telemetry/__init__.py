"""Telemetry storage, rollups and energy integration."""
from telemetry.store import SampleStore
from telemetry.rollup import RollupAggregator, RollupReport
from telemetry.energy import EnergyCalculator, integrate_energy
