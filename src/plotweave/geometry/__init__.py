from .bars import GeomBar, GeomCol, GeomHistogram
from .base import Geom
from .boxplot import GeomBoxplot
from .lines import GeomLine, GeomPath
from .points import GeomPoint
from .ribbons import GeomArea, GeomDensity, GeomRibbon, GeomSmooth
from .text import GeomText
