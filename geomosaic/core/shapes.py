import numpy as np
from typing import Dict, List, Optional, Sequence, Tuple, Type, Union

from geomosaic.core.rasterizer import (
    convex_polygon_scanlines,
    ellipse_scanlines,
    polyline_scanlines,
)
from geomosaic.core.scanline import (
    Scanline,
    make_scanlines,
    merge_scanlines,
    trim_scanlines,
)

# number of vertices used to approximate a rotated ellipse outline
ROTATED_ELLIPSE_SEGMENTS = 20


def random_range(rng: np.random.Generator, low: int, high: int) -> int:
    """
    Draws a uniformly distributed integer from the inclusive range [low, high]

    :param rng: The random generator to draw from
    :type rng: np.random.Generator
    :param low: Smallest value that can be returned
    :type low: int
    :param high: Largest value that can be returned
    :type high: int
    :return: The sampled integer
    :rtype: int
    """
    return int(rng.integers(low, high, endpoint=True))


def clamp(value: int, low: int, high: int) -> int:
    """Clamps `value` to [low, high]; `low` wins if the range is empty"""
    return max(low, min(high, value))


class Shape:
    """
    Base class for the primitives placed on the canvas

    A shape is pure geometry: a small int32 parameter array and the image
    bounds it lives in. It knows how to randomize, mutate, copy and rasterize
    itself, but never touches pixels; scoring and compositing happen elsewhere

    Subclasses set `shape_type` (the stable tag used for serialization and
    shape filtering), `param_kinds` (one entry per parameter, naming the range
    it is clamped to) and implement `_random_params`, `mutate` and `_scanlines`
    """

    shape_type = ""
    # "x"/"y": coordinate in [0, bound - 1], "rx"/"ry": radius in [1, bound - 1],
    # "angle": degrees in [0, 360]
    param_kinds: Tuple[str, ...] = ()

    def __init__(
        self,
        x_bound: int,
        y_bound: int,
        rng: np.random.Generator,
        params: Optional[Sequence[int]] = None,
    ):
        """
        Creates a shape inside an image of size `x_bound` x `y_bound`

        :param x_bound: Image width in pixels, > 0
        :type x_bound: int
        :param y_bound: Image height in pixels, > 0
        :type y_bound: int
        :param rng: Random generator used for construction and mutation
        :type rng: np.random.Generator
        :param params: Optional explicit parameters; they are clamped to bounds
                       When omitted, random in-bounds geometry is generated
        :type params: Optional[Sequence[int]]
        :raises ValueError: If the bounds are not positive or `params` has the wrong length
        """
        if x_bound <= 0 or y_bound <= 0:
            raise ValueError(
                f"Shape bounds must be positive, got {x_bound}x{y_bound}"
            )
        self.x_bound = int(x_bound)
        self.y_bound = int(y_bound)
        self.rng = rng
        if params is None:
            self.params = np.array(self._random_params(), dtype=np.int32)
        else:
            values = [int(v) for v in params]
            if len(values) != len(self.param_kinds):
                raise ValueError(
                    f"'{self.shape_type}' expects {len(self.param_kinds)} parameters, got {len(values)}"
                )
            self.params = np.array(values, dtype=np.int32)
        self._clamp_params()

    def _bounds_for(self, kind: str) -> Tuple[int, int]:
        if kind == "x":
            return 0, self.x_bound - 1
        if kind == "y":
            return 0, self.y_bound - 1
        if kind == "rx":
            return 1, max(1, self.x_bound - 1)
        if kind == "ry":
            return 1, max(1, self.y_bound - 1)
        return 0, 360  # angle

    def _clamp_params(self):
        for i, kind in enumerate(self.param_kinds):
            low, high = self._bounds_for(kind)
            self.params[i] = clamp(int(self.params[i]), low, high)

    def _jitter(self, index: int, amount: int):
        # moves one parameter by a random offset in [-amount, amount], then clamps it
        low, high = self._bounds_for(self.param_kinds[index])
        offset = random_range(self.rng, -amount, amount)
        self.params[index] = clamp(int(self.params[index]) + offset, low, high)

    def _random_params(self) -> List[int]:
        raise NotImplementedError

    def _scanlines(self) -> np.ndarray:
        raise NotImplementedError

    def mutate(self):
        """Perturbs one randomly chosen parameter group in place, staying in bounds"""
        raise NotImplementedError

    def clone(self) -> "Shape":
        """
        Returns an independent copy of this shape

        The copy shares the bounds and random generator but owns its parameters

        :return: A new shape of the same type with equal parameters
        :rtype: Shape
        """
        return type(self)(self.x_bound, self.y_bound, self.rng, params=self.params)

    def rasterize(self) -> np.ndarray:
        """
        Converts the shape into scanlines clipped to the image

        The result is deterministic for the current parameters, lies inside
        [0, x_bound) x [0, y_bound), and its runs are pairwise disjoint

        :return: (N x 4) int32 scanline array
        :rtype: np.ndarray
        """
        lines = trim_scanlines(self._scanlines(), self.x_bound, self.y_bound)
        return merge_scanlines(lines, self.x_bound)

    def type_tag(self) -> str:
        return self.shape_type

    def raw_parameters(self) -> List[int]:
        """Returns the parameters as a flat list of ints, for export"""
        return [int(v) for v in self.params]


class Rectangle(Shape):
    """Axis-aligned filled rectangle given by two opposite corners"""

    shape_type = "rectangle"
    param_kinds = ("x", "y", "x", "y")

    def _random_params(self) -> List[int]:
        x1 = random_range(self.rng, 0, self.x_bound - 1)
        y1 = random_range(self.rng, 0, self.y_bound - 1)
        x2 = clamp(x1 + random_range(self.rng, 1, 32), 0, self.x_bound - 1)
        y2 = clamp(y1 + random_range(self.rng, 1, 32), 0, self.y_bound - 1)
        return [x1, y1, x2, y2]

    def mutate(self):
        corner = random_range(self.rng, 0, 1)
        self._jitter(2 * corner, 16)
        self._jitter(2 * corner + 1, 16)

    def _scanlines(self) -> np.ndarray:
        x1, y1, x2, y2 = (int(v) for v in self.params)
        left, right = min(x1, x2), max(x1, x2)
        top, bottom = min(y1, y2), max(y1, y2)
        return make_scanlines(Scanline(y, left, right) for y in range(top, bottom + 1))

    def raw_parameters(self) -> List[int]:
        # exported as (left, top, right, bottom)
        x1, y1, x2, y2 = (int(v) for v in self.params)
        return [min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2)]


class RotatedRectangle(Shape):
    """Rectangle rotated by `angle` degrees around its centre"""

    shape_type = "rotated_rectangle"
    param_kinds = ("x", "y", "x", "y", "angle")

    def _random_params(self) -> List[int]:
        x1 = random_range(self.rng, 0, self.x_bound - 1)
        y1 = random_range(self.rng, 0, self.y_bound - 1)
        x2 = clamp(x1 + random_range(self.rng, 1, 32), 0, self.x_bound - 1)
        y2 = clamp(y1 + random_range(self.rng, 1, 32), 0, self.y_bound - 1)
        angle = random_range(self.rng, 0, 360)
        return [x1, y1, x2, y2, angle]

    def mutate(self):
        choice = random_range(self.rng, 0, 2)
        if choice == 2:
            self._jitter(4, 4)
        else:
            self._jitter(2 * choice, 16)
            self._jitter(2 * choice + 1, 16)

    def corners(self) -> np.ndarray:
        """
        Computes the four rotated corners in drawing order

        :return: (4 x 2) float64 array: upper-left, upper-right, bottom-right, bottom-left
        :rtype: np.ndarray
        """
        x1, y1, x2, y2, angle = (int(v) for v in self.params)
        left, right = min(x1, x2), max(x1, x2)
        top, bottom = min(y1, y2), max(y1, y2)
        cx, cy = (left + right) / 2.0, (top + bottom) / 2.0
        offsets = np.array(
            [
                [left - cx, top - cy],
                [right - cx, top - cy],
                [right - cx, bottom - cy],
                [left - cx, bottom - cy],
            ]
        )
        rads = np.radians(angle)
        c, s = np.cos(rads), np.sin(rads)
        rotation = np.array([[c, -s], [s, c]])
        return offsets @ rotation.T + np.array([cx, cy])

    def _scanlines(self) -> np.ndarray:
        points = np.rint(self.corners()).astype(np.int64)
        return convex_polygon_scanlines(points)


class Triangle(Shape):
    """Filled triangle given by three vertices"""

    shape_type = "triangle"
    param_kinds = ("x", "y", "x", "y", "x", "y")

    def _random_params(self) -> List[int]:
        x1 = random_range(self.rng, 0, self.x_bound - 1)
        y1 = random_range(self.rng, 0, self.y_bound - 1)
        params = [x1, y1]
        for _ in range(2):
            params.append(x1 + random_range(self.rng, -32, 32))
            params.append(y1 + random_range(self.rng, -32, 32))
        # remaining vertices are clamped by the constructor
        return params

    def mutate(self):
        vertex = random_range(self.rng, 0, 2)
        self._jitter(2 * vertex, 32)
        self._jitter(2 * vertex + 1, 32)

    def _scanlines(self) -> np.ndarray:
        points = self.params.reshape(3, 2).astype(np.int64)
        return convex_polygon_scanlines(points)


class Ellipse(Shape):
    """Axis-aligned filled ellipse given by centre and radii"""

    shape_type = "ellipse"
    param_kinds = ("x", "y", "rx", "ry")

    def _random_params(self) -> List[int]:
        return [
            random_range(self.rng, 0, self.x_bound - 1),
            random_range(self.rng, 0, self.y_bound - 1),
            random_range(self.rng, 1, 32),
            random_range(self.rng, 1, 32),
        ]

    def mutate(self):
        choice = random_range(self.rng, 0, 2)
        if choice == 0:
            self._jitter(0, 16)
            self._jitter(1, 16)
        else:
            self._jitter(choice + 1, 16)

    def _scanlines(self) -> np.ndarray:
        x, y, rx, ry = (int(v) for v in self.params)
        return ellipse_scanlines(x, y, rx, ry)


class RotatedEllipse(Shape):
    """Ellipse rotated by `angle` degrees, rasterized as a polygon"""

    shape_type = "rotated_ellipse"
    param_kinds = ("x", "y", "rx", "ry", "angle")

    def _random_params(self) -> List[int]:
        return [
            random_range(self.rng, 0, self.x_bound - 1),
            random_range(self.rng, 0, self.y_bound - 1),
            random_range(self.rng, 1, 32),
            random_range(self.rng, 1, 32),
            random_range(self.rng, 0, 360),
        ]

    def mutate(self):
        choice = random_range(self.rng, 0, 3)
        if choice == 0:
            self._jitter(0, 16)
            self._jitter(1, 16)
        elif choice == 3:
            self._jitter(4, 4)
        else:
            self._jitter(choice + 1, 16)

    def outline(self) -> np.ndarray:
        """
        Samples the rotated outline

        :return: (ROTATED_ELLIPSE_SEGMENTS x 2) float64 array of (x, y) points
        :rtype: np.ndarray
        """
        x, y, rx, ry, angle = (int(v) for v in self.params)
        theta = np.radians(np.arange(ROTATED_ELLIPSE_SEGMENTS) * (360.0 / ROTATED_ELLIPSE_SEGMENTS))
        rads = np.radians(angle)
        c, s = np.cos(rads), np.sin(rads)
        ex, ey = rx * np.cos(theta), ry * np.sin(theta)
        return np.column_stack((ex * c - ey * s + x, ex * s + ey * c + y))

    def _scanlines(self) -> np.ndarray:
        points = np.rint(self.outline()).astype(np.int64)
        return convex_polygon_scanlines(points)


class Circle(Shape):
    """Filled circle given by centre and radius"""

    shape_type = "circle"
    param_kinds = ("x", "y", "rx")

    def _random_params(self) -> List[int]:
        return [
            random_range(self.rng, 0, self.x_bound - 1),
            random_range(self.rng, 0, self.y_bound - 1),
            random_range(self.rng, 1, 32),
        ]

    def mutate(self):
        if random_range(self.rng, 0, 1) == 0:
            self._jitter(0, 16)
            self._jitter(1, 16)
        else:
            self._jitter(2, 16)

    def _scanlines(self) -> np.ndarray:
        x, y, r = (int(v) for v in self.params)
        return ellipse_scanlines(x, y, r, r)


class Line(Shape):
    """One-pixel-wide straight line between two endpoints"""

    shape_type = "line"
    param_kinds = ("x", "y", "x", "y")

    def _random_params(self) -> List[int]:
        x1 = random_range(self.rng, 0, self.x_bound - 1)
        y1 = random_range(self.rng, 0, self.y_bound - 1)
        return [
            x1,
            y1,
            x1 + random_range(self.rng, -32, 32),
            y1 + random_range(self.rng, -32, 32),
        ]

    def mutate(self):
        end = random_range(self.rng, 0, 1)
        self._jitter(2 * end, 16)
        self._jitter(2 * end + 1, 16)

    def _scanlines(self) -> np.ndarray:
        return polyline_scanlines(self.params.reshape(2, 2).astype(np.int64))


class QuadraticBezier(Shape):
    """
    Curve through four control points, drawn as a chain of Bresenham segments

    Every control point is joined to the next one; the final point is joined to
    itself. The control points start clustered around a random anchor
    """

    shape_type = "quadratic_bezier"
    param_kinds = ("x", "y") * 4

    def _random_params(self) -> List[int]:
        anchor_x = random_range(self.rng, 0, self.x_bound)
        anchor_y = random_range(self.rng, 0, self.y_bound - 1)
        params = []
        for _ in range(4):
            params.append(
                clamp(anchor_x + random_range(self.rng, -32, 32), 0, self.x_bound - 1)
            )
            params.append(
                clamp(anchor_y + random_range(self.rng, -32, 32), 0, self.y_bound - 1)
            )
        return params

    def mutate(self):
        point = random_range(self.rng, 0, 3)
        self._jitter(2 * point, 64)
        self._jitter(2 * point + 1, 64)

    def control_points(self) -> np.ndarray:
        """Returns the (4 x 2) array of (x, y) control points"""
        return self.params.reshape(4, 2).astype(np.int64)

    def _scanlines(self) -> np.ndarray:
        return polyline_scanlines(self.control_points())


# registry of every available shape type, keyed by its tag
SHAPE_TYPES: Dict[str, Type[Shape]] = {
    cls.shape_type: cls
    for cls in (
        Rectangle,
        RotatedRectangle,
        Triangle,
        Ellipse,
        RotatedEllipse,
        Circle,
        Line,
        QuadraticBezier,
    )
}
AVAILABLE_SHAPES = list(SHAPE_TYPES.keys())


def normalize_shape_types(shape_types: Union[str, Sequence[str]]) -> List[str]:
    """
    Validates a shape type selection and returns it as a list of tags

    :param shape_types: A single tag or a sequence of tags
    :type shape_types: Union[str, Sequence[str]]
    :raises ValueError: If the selection is empty or names an unknown shape type
    :return: The selected tags, duplicates removed, in first-seen order
    :rtype: List[str]
    """
    if isinstance(shape_types, str):
        shape_types = [shape_types]
    selected = list(dict.fromkeys(shape_types))
    if not selected:
        raise ValueError("At least one shape type must be selected")
    unknown = [name for name in selected if name not in SHAPE_TYPES]
    if unknown:
        raise ValueError(
            f"Unknown shape type(s) {unknown}, available: {AVAILABLE_SHAPES}"
        )
    return selected


def create_shape(
    shape_type: str,
    x_bound: int,
    y_bound: int,
    rng: np.random.Generator,
    params: Optional[Sequence[int]] = None,
) -> Shape:
    """
    Instantiates a shape by its tag

    :param shape_type: Shape tag, one of `AVAILABLE_SHAPES`
    :type shape_type: str
    :param x_bound: Image width in pixels
    :type x_bound: int
    :param y_bound: Image height in pixels
    :type y_bound: int
    :param rng: Random generator for the new shape
    :type rng: np.random.Generator
    :param params: Optional explicit parameters (random geometry when omitted)
    :type params: Optional[Sequence[int]]
    :raises ValueError: If the tag is unknown
    :return: The new shape
    :rtype: Shape
    """
    if shape_type not in SHAPE_TYPES:
        raise ValueError(
            f"Unknown shape type '{shape_type}', available: {AVAILABLE_SHAPES}"
        )
    return SHAPE_TYPES[shape_type](x_bound, y_bound, rng, params=params)


def random_shape_of(
    shape_types: Sequence[str], x_bound: int, y_bound: int, rng: np.random.Generator
) -> Shape:
    """Creates a random shape whose type is picked uniformly from `shape_types`"""
    shape_type = shape_types[int(rng.integers(0, len(shape_types)))]
    return SHAPE_TYPES[shape_type](x_bound, y_bound, rng)
