"""Generic step functions shipped with cytopipe.

Domain algorithms (compensation, logicle scaling, debris or doublet gating)
are expected to come from user modules registered with ``@register_step``.
These builtins cover reading tabular sample files and a few channel-wise
operations useful for assembling and testing queues.
"""

from __future__ import annotations

import csv
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from cytopipe.steps.registry import register_step


@dataclass(frozen=True)
class EventTable:
    channels: tuple[str, ...]
    values: np.ndarray

    def __post_init__(self) -> None:
        if self.values.ndim != 2:
            raise ValueError(f"event values must be 2D, got shape {self.values.shape}")
        if self.values.shape[1] != len(self.channels):
            raise ValueError(
                f"event values have {self.values.shape[1]} columns for {len(self.channels)} channels"
            )

    @property
    def n_events(self) -> int:
        return int(self.values.shape[0])

    def channel_index(self, channel: str) -> int:
        try:
            return self.channels.index(channel)
        except ValueError as exc:
            raise KeyError(f"unknown channel '{channel}'; available={list(self.channels)}") from exc

    def column(self, channel: str) -> np.ndarray:
        return self.values[:, self.channel_index(channel)]

    def with_values(self, values: np.ndarray) -> "EventTable":
        return EventTable(channels=self.channels, values=values)


def _as_table(data: object) -> EventTable:
    if not isinstance(data, EventTable):
        raise TypeError(f"expected EventTable input, got {type(data).__name__}")
    return data


def _selected(table: EventTable, channels: Sequence[str] | None) -> list[str]:
    if channels is None:
        return list(table.channels)
    if isinstance(channels, str):
        channels = [channels]
    for channel in channels:
        table.channel_index(channel)
    return [str(channel) for channel in channels]


@register_step("read_sample_csv")
def read_sample_csv(path: str, delimiter: str = ",", channels: Sequence[str] | None = None) -> EventTable:
    if not path:
        raise ValueError("sample has no file path")
    file_path = Path(path)
    if not file_path.is_file():
        raise FileNotFoundError(f"sample file does not exist: {file_path}")
    with file_path.open("r", encoding="utf-8", newline="") as fp:
        header = next(csv.reader(fp, delimiter=delimiter), None)
    if not header:
        raise ValueError(f"sample file has no header row: {file_path}")
    values = np.loadtxt(file_path, delimiter=delimiter, skiprows=1, ndmin=2, dtype=float)
    if values.size == 0:
        values = np.empty((0, len(header)), dtype=float)
    table = EventTable(channels=tuple(name.strip() for name in header), values=values)
    if channels is not None:
        return select_channels(table, channels)
    return table


@register_step("select_channels")
def select_channels(data: EventTable, channels: Sequence[str]) -> EventTable:
    table = _as_table(data)
    names = _selected(table, channels)
    indices = [table.channel_index(name) for name in names]
    return EventTable(channels=tuple(names), values=table.values[:, indices].copy())


@register_step("arcsinh_transform")
def arcsinh_transform(
    data: EventTable,
    cofactor: float | Mapping[str, float] = 150.0,
    channels: Sequence[str] | None = None,
) -> EventTable:
    """Apply ``arcsinh(x / cofactor)`` to the selected channels.

    ``cofactor`` may be a single value or a per-channel mapping; channels
    missing from the mapping are left untouched.
    """
    table = _as_table(data)
    out = table.values.copy()
    for channel in _selected(table, channels):
        if isinstance(cofactor, Mapping):
            if channel not in cofactor:
                continue
            factor = float(cofactor[channel])
        else:
            factor = float(cofactor)
        if factor <= 0.0:
            raise ValueError(f"cofactor for channel '{channel}' must be positive, got {factor}")
        idx = table.channel_index(channel)
        out[:, idx] = np.arcsinh(out[:, idx] / factor)
    return table.with_values(out)


@register_step("remove_margins")
def remove_margins(
    data: EventTable,
    channels: Sequence[str] | None = None,
    limits: Mapping[str, Sequence[float]] | None = None,
) -> EventTable:
    """Drop events sitting on a channel's range limits.

    Without explicit ``limits`` the observed min and max of each channel are
    used, which removes saturated events.
    """
    table = _as_table(data)
    if table.n_events == 0:
        return table
    keep = np.ones(table.n_events, dtype=bool)
    for channel in _selected(table, channels):
        column = table.column(channel)
        if limits is not None and channel in limits:
            low, high = (float(v) for v in limits[channel])
        else:
            low, high = float(np.min(column)), float(np.max(column))
        keep &= (column > low) & (column < high)
    return table.with_values(table.values[keep])


@register_step("filter_range")
def filter_range(
    data: EventTable,
    channel: str,
    minimum: float | None = None,
    maximum: float | None = None,
) -> EventTable:
    table = _as_table(data)
    column = table.column(channel)
    keep = np.ones(table.n_events, dtype=bool)
    if minimum is not None:
        keep &= column >= float(minimum)
    if maximum is not None:
        keep &= column <= float(maximum)
    return table.with_values(table.values[keep])


@register_step("count_events")
def count_events(data: EventTable) -> int:
    return _as_table(data).n_events


@register_step("summarize_channels")
def summarize_channels(data: EventTable, channels: Sequence[str] | None = None) -> dict[str, dict[str, Any]]:
    table = _as_table(data)
    out: dict[str, dict[str, Any]] = {}
    for channel in _selected(table, channels):
        column = table.column(channel)
        if column.size == 0:
            out[channel] = {"count": 0, "mean": None, "median": None, "min": None, "max": None}
            continue
        out[channel] = {
            "count": int(column.size),
            "mean": float(np.mean(column)),
            "median": float(np.median(column)),
            "min": float(np.min(column)),
            "max": float(np.max(column)),
        }
    return out
