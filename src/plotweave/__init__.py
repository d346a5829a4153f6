from .aesthetics import Aesthetic, AestheticMapping, Computed, Fixed, Mapped, aes, after_stat, fixed
from .colors import Color, color
from .config import Config, ConfigKey, default_config
from .coordinates import ClipPolicy, CoordCartesian, CoordFlip, CoordIdentity, CoordPolar, Panel
from .data import ArraySource, ColumnSource, DataSource, FrameSource, as_data_source
from .errors import (
    ColumnNotFound,
    MissingRequiredAesthetic,
    NoPositionalAesthetic,
    NonNumericAesthetic,
    PipelineStateError,
    PlotweaveError,
    RowCountMismatch,
    ScaleFrozen,
    StatComputationFailed,
    UntrainedScale,
)
from .facets import FacetGrid, FacetNull, FacetWrap
from .layer import (
    Layer,
    area,
    bars,
    boxplot,
    cols,
    density,
    histogram,
    lines,
    path,
    points,
    smooth,
    text,
)
from .plot import BuiltPlot, Plot, Stage, plot
from .positions import PositionDodge, PositionIdentity, PositionJitter, PositionStack
from .render import PillowRenderer, Renderer
from .scales import (
    ScaleRegistry,
    colorcontinuous,
    colordiscrete,
    fillcontinuous,
    filldiscrete,
    xcontinuous,
    xdiscrete,
    ycontinuous,
    ydiscrete,
)
from .stats import StatBin, StatBoxplot, StatCount, StatDensity, StatIdentity, StatSmooth
