"""
The plot orchestrator.

Each (layer, panel) pair moves through a fixed sequence of stages:

    SPECIFIED -> EVALUATED -> TRANSFORMED -> TRAINED -> SCALED -> RENDERED

Evaluation, the stat and data-space positions run per layer and panel. Scale
training is a barrier: every partial domain is folded into the scale registry
and the registry is frozen before any layer maps values. Mapping, scaled-space
positions and drawing then run per layer and panel, and the commands are
merged in panel order, then layer order.
"""

from __future__ import annotations

import copy
import logging
import warnings
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Any

import numpy as np
from numpy.typing import NDArray

from .aesthetics import POSITION_EXTENTS, Aesthetic, AestheticMapping, Fixed
from .colors import Colors
from .config import Config, default_config
from .coordinates import CoordCartesian, CoordSystem, Panel
from .data import ColumnSource, DataSource, as_data_source, is_numeric
from .errors import (
    LAYER_FATAL_ERRORS,
    PipelineStateError,
    PlotweaveError,
    StatComputationFailed,
)
from .evaluate import apply_fixed, evaluate_aesthetics, evaluate_after_stat
from .facets import Facet, FacetNull, PanelSpec
from .layer import Layer
from .primitives import DrawCommand, Point
from .processed import ProcessedData
from .scales import (
    ContinuousDomain,
    Scale,
    ScaleContinuous,
    ScaleDiscrete,
    ScaleRegistry,
    literal_colors,
)

logger = logging.getLogger(__name__)


class Stage(IntEnum):
    SPECIFIED = 0
    EVALUATED = 1
    TRANSFORMED = 2
    TRAINED = 3
    SCALED = 4
    RENDERED = 5


@dataclass
class PanelState:
    """Pipeline state of one layer within one panel."""

    panel: int
    data: ProcessedData = field(default_factory=ProcessedData.empty)
    stage: Stage = Stage.SPECIFIED
    commands: list[DrawCommand] = field(default_factory=list)

    def advance(self, stage: Stage):
        if stage != self.stage + 1:
            raise PipelineStateError(
                f"Cannot move from {self.stage.name} to {stage.name} in panel {self.panel}"
            )
        self.stage = stage


@dataclass
class LayerResult:
    """
    Outcome of one layer: the stage it reached, the layer-fatal error that
    stopped it (if any), rows dropped for missing values, and warnings.
    """

    index: int
    layer: Layer
    stage: Stage = Stage.SPECIFIED
    error: PlotweaveError | None = None
    dropped: int = 0
    warnings: list[str] = field(default_factory=list)
    commands: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Guide:
    """Tick marks of a positional scale, for an external axis renderer."""

    aesthetic: Aesthetic
    panel: int
    breaks: list[Any]
    labels: list[str]
    positions: list[Point]


@dataclass
class BuiltPlot:
    commands: list[DrawCommand]
    layers: list[LayerResult]
    panels: list[Panel]
    scales: MappingProxyType[Aesthetic, Scale]
    width: float
    height: float
    registry: ScaleRegistry
    coord: CoordSystem

    def guides(self) -> list[Guide]:
        """Breaks, labels and device positions of the positional scales per panel."""
        guides = []
        for panel in self.panels:
            coord = self.coord.with_panel(panel)
            view = self.registry.panel_view(panel.index)
            for aes in (Aesthetic.X, Aesthetic.Y):
                scale = view.get(aes)
                if scale is None:
                    continue
                if isinstance(scale, ScaleDiscrete) and not scale.levels:
                    continue
                breaks = scale.breaks()
                mapped = np.asarray(scale.map(breaks), dtype=np.float64)
                zeros = np.zeros(len(mapped))
                if aes == Aesthetic.X:
                    px, py = coord.transform(mapped, zeros)
                else:
                    px, py = coord.transform(zeros, mapped)
                guides.append(
                    Guide(
                        aes,
                        panel.index,
                        breaks,
                        scale.labels(),
                        [Point(float(a), float(b)) for a, b in zip(px, py)],
                    )
                )
        return guides

    def render(self, renderer):
        return renderer.render(self.commands, self.width, self.height)


class Plot:
    """
    A declarative plot: data, a plot-level mapping, layers, user scales, a
    coordinate system, faceting and a config. `build` runs the pipeline and
    never modifies the plot, so a plot can be built repeatedly.
    """

    def __init__(
        self,
        data: Any = None,
        mapping: AestheticMapping | dict | None = None,
        layers: Iterable[Layer] = (),
        scales: Iterable[Scale] = (),
        coord: CoordSystem | None = None,
        facet: Facet | None = None,
        config: Config | None = None,
    ):
        self.data = data
        self.mapping = (
            mapping if isinstance(mapping, AestheticMapping) else AestheticMapping(mapping)
        )
        self.layers = list(layers)
        self.scales = list(scales)
        self.coord = coord
        self.facet = facet
        self.config = config

    def add(self, *items: Any) -> Plot:
        for item in items:
            match item:
                case Layer():
                    self.layers.append(item)
                case Scale():
                    self.scales.append(item)
                case CoordSystem():
                    self.coord = item
                case Facet():
                    self.facet = item
                case Config():
                    self.config = item
                case AestheticMapping():
                    self.mapping = self.mapping.merge(item)
                case _:
                    self.data = item
        return self

    def __iadd__(self, item: Any) -> Plot:
        return self.add(item)

    def build(self, width: float | None = None, height: float | None = None) -> BuiltPlot:
        config = self.config if self.config is not None else default_config()
        width = float(width if width is not None else config.canvas_width)
        height = float(height if height is not None else config.canvas_height)

        coord = copy.deepcopy(self.coord) if self.coord is not None else CoordCartesian()
        config.replace_keys(coord)
        facet = self.facet if self.facet is not None else FacetNull()
        registry = ScaleRegistry(copy.deepcopy(scale) for scale in self.scales)
        layers = [layer.configured(config) for layer in self.layers]

        plot_source = as_data_source(self.data) if self.data is not None else None
        sources = [self._layer_source(layer, plot_source) for layer in layers]
        specs = facet.train(sources)
        panels = facet.layout(specs, width, height, config.facet_spacing)
        logger.debug("Building %d layers over %d panels", len(layers), len(panels))

        results = [LayerResult(i, layer) for i, layer in enumerate(layers)]
        states: list[list[PanelState]] = []
        mappings: list[AestheticMapping] = []
        for result, source in zip(results, sources):
            mapping = result.layer.resolved_mapping(self.mapping, config)
            mappings.append(mapping)
            states.append(
                self._transform_layer(result, mapping, source, facet, specs)
            )

        self._train(results, states, mappings, registry, coord, facet, config)

        for result, layer_states, mapping in zip(results, states, mappings):
            if result.ok:
                self._render_layer(result, layer_states, mapping, registry, coord, panels)

        commands: list[DrawCommand] = []
        for p in range(len(panels)):
            for result, layer_states in zip(results, states):
                if result.ok:
                    commands.extend(layer_states[p].commands)

        return BuiltPlot(
            commands, results, panels, registry.view(), width, height, registry, coord
        )

    def _layer_source(self, layer: Layer, plot_source: DataSource | None) -> DataSource:
        if layer.data is not None:
            return as_data_source(layer.data)
        if plot_source is not None:
            return plot_source
        return ColumnSource({})

    def _fail(self, result: LayerResult, error: PlotweaveError):
        result.error = error
        logger.warning("Layer %d (%s) failed: %s", result.index, result.layer.name, error)

    def _transform_layer(
        self,
        result: LayerResult,
        mapping: AestheticMapping,
        source: DataSource,
        facet: Facet,
        specs: Sequence[PanelSpec],
    ) -> list[PanelState]:
        layer = result.layer
        stat, position, geom = layer.stat, layer.position, layer.geom
        assert stat is not None and position is not None

        required = set(stat.required_aes) | set(geom.required_aes)
        stat_fixed = AestheticMapping(
            {aes: spec for aes, spec in mapping.of_kind(Fixed).items() if aes in stat.required_aes}
        )

        states = [PanelState(p) for p in range(len(specs))]
        try:
            for state, spec in zip(states, specs):
                panel_source = facet.subset(source, spec)
                data = evaluate_aesthetics(panel_source, mapping, required)
                state.advance(Stage.EVALUATED)

                data = apply_fixed(data, stat_fixed)
                data, dropped = stat.drop_missing(data)
                result.dropped += dropped
                try:
                    data = stat.compute(data, mapping)
                except StatComputationFailed as e:
                    message = f"{type(stat).__name__} failed in panel {spec.label or state.panel}: {e}"
                    warnings.warn(message)
                    result.warnings.append(message)
                    data = stat.empty_result(data)

                data = evaluate_after_stat(data, mapping, stat.computed_vars)
                data = apply_fixed(data, mapping).with_group_ids()
                if position.data_space:
                    data = position.adjust(data)
                data = geom.setup_data(data)
                geom.check_required(data)
                state.data = data
                state.advance(Stage.TRANSFORMED)
        except LAYER_FATAL_ERRORS as e:
            self._fail(result, e)
            return states

        result.stage = Stage.TRANSFORMED
        return states

    def _train(
        self,
        results: Sequence[LayerResult],
        states: Sequence[Sequence[PanelState]],
        mappings: Sequence[AestheticMapping],
        registry: ScaleRegistry,
        coord: CoordSystem,
        facet: Facet,
        config: Config,
    ):
        # Pick scale kinds from every layer's values, as a whole.
        numeric: dict[Aesthetic, bool] = {}
        for result, layer_states, mapping in zip(results, states, mappings):
            if not result.ok:
                continue
            literal = _literal_aesthetics(mapping)
            for state in layer_states:
                for aes in state.data.aesthetics():
                    if aes in literal:
                        continue
                    values = state.data[aes]
                    numeric[aes] = numeric.get(aes, True) and is_numeric(values)

        for aes, is_num in numeric.items():
            registry.ensure(aes, is_num, config)

        free = {Aesthetic.X: facet.free_x, Aesthetic.Y: facet.free_y}
        for aes, is_free in free.items():
            if is_free and aes in registry:
                for p in range(len(states[0]) if states else 0):
                    registry.ensure_panel(aes, p)

        for result, layer_states, mapping in zip(results, states, mappings):
            if not result.ok:
                continue
            literal = _literal_aesthetics(mapping)
            for state in layer_states:
                for aes in state.data.aesthetics():
                    if aes in literal:
                        continue
                    panel = state.panel if free.get(aes, False) else None
                    scale = registry.get(aes, panel)
                    assert scale is not None
                    for values in _training_columns(state.data, aes, scale):
                        values = values[coord.training_mask(aes, values)]
                        registry.train_partial(aes, scale.domain_of(values), panel)

        # Coordinate limits define the visible range of continuous positions.
        for aes in (Aesthetic.X, Aesthetic.Y):
            limits = coord.limits(aes)
            if limits is None or aes not in registry:
                continue
            scales = [registry.get(aes)] + [
                registry.get(aes, p) for p in range(len(states[0]) if states else 0)
            ]
            for scale in dict.fromkeys(s for s in scales if s is not None):
                if isinstance(scale, ScaleContinuous):
                    scale.train_domain(
                        ContinuousDomain.of(scale.trans.forward(np.asarray(limits, dtype=np.float64)))
                    )

        registry.resolve_keys(config)
        registry.freeze()
        logger.debug("Scales trained and frozen: %s", registry.view())

        for result, layer_states in zip(results, states):
            if result.ok:
                for state in layer_states:
                    state.advance(Stage.TRAINED)
                result.stage = Stage.TRAINED

    def _render_layer(
        self,
        result: LayerResult,
        states: Sequence[PanelState],
        mapping: AestheticMapping,
        registry: ScaleRegistry,
        coord: CoordSystem,
        panels: Sequence[Panel],
    ):
        layer = result.layer
        geom, position = layer.geom, layer.position
        assert position is not None
        literal = _literal_aesthetics(mapping)

        try:
            for state in states:
                view = registry.panel_view(state.panel)
                data = _scale_data(state.data, view, literal)
                state.advance(Stage.SCALED)

                if not position.data_space:
                    data = position.adjust(data)
                geom.check_required(data)
                data, dropped = geom.drop_missing(data)
                result.dropped += dropped
                state.commands = geom.draw(data, coord.with_panel(panels[state.panel]))
                state.advance(Stage.RENDERED)
        except LAYER_FATAL_ERRORS as e:
            self._fail(result, e)
            return

        result.stage = Stage.RENDERED
        result.commands = sum(len(state.commands) for state in states)
        logger.debug(
            "Layer %d (%s) emitted %d commands, dropped %d rows",
            result.index,
            layer.name,
            result.commands,
            result.dropped,
        )


def _literal_aesthetics(mapping: AestheticMapping) -> set[Aesthetic]:
    """Fixed non-positional aesthetics, which are visual values already."""
    return {aes for aes in mapping.of_kind(Fixed) if not aes.is_positional()}


def _flatten(values: NDArray[Any]) -> NDArray[np.float64]:
    arrays = [np.asarray(v, dtype=np.float64) for v in values if v is not None]
    return np.concat(arrays) if arrays else np.zeros(0)


def _training_columns(
    data: ProcessedData, aes: Aesthetic, scale: Scale
) -> list[NDArray[Any]]:
    columns = [data[aes]]
    if isinstance(scale, ScaleContinuous):
        for key in POSITION_EXTENTS.get(aes, ()):
            if data.has(key):
                values = data[key]
                columns.append(_flatten(values) if values.dtype == object else values)
    return columns


def _scale_data(
    data: ProcessedData, scales: MappingProxyType[Aesthetic, Scale], literal: set[Aesthetic]
) -> ProcessedData:
    """Map every aesthetic and positional extent through its frozen scale."""
    if data.n_rows == 0:
        return data

    columns: dict[Any, Any] = {}
    for key, values in data.items():
        if isinstance(key, Aesthetic):
            if key in literal:
                if key in (Aesthetic.COLOR, Aesthetic.FILL):
                    columns[key] = literal_colors(values).values
                else:
                    columns[key] = values
                continue
            mapped = scales[key].map(values)
            columns[key] = mapped.values if isinstance(mapped, Colors) else np.asarray(mapped)
        else:
            columns[key] = values

    for aes, extents in POSITION_EXTENTS.items():
        scale = scales.get(aes)
        if not isinstance(scale, ScaleContinuous):
            continue
        for key in extents:
            if not data.has(key):
                continue
            values = data[key]
            if values.dtype == object:
                mapped = np.empty(len(values), dtype=object)
                for i, v in enumerate(values):
                    mapped[i] = None if v is None else scale.map(np.asarray(v, dtype=np.float64))
                columns[key] = mapped
            else:
                columns[key] = scale.map(values)

    return ProcessedData(columns, data.n_rows)


def plot(*args: Any) -> Plot:
    """
    Assemble a plot from data, a mapping, layers, scales, a coordinate system,
    a facet and a config, given in any order.
    """
    return Plot().add(*args)
