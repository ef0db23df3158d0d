import os
import numpy as np
from concurrent.futures import ThreadPoolExecutor
from typing import List, NamedTuple, Optional, Sequence, Tuple, Union

from geomosaic.core.compositor import compute_color, copy_lines, draw_lines
from geomosaic.core.image_utils import create_bitmap, fill_bitmap, to_color
from geomosaic.core.metrics import difference_full, difference_partial
from geomosaic.core.optimizers import (
    State,
    best_hill_climb_state,
    validate_search_parameters,
)
from geomosaic.core.shapes import Shape


class ShapeResult(NamedTuple):
    """A committed shape, the color it was drawn with and the score after drawing it"""

    score: float
    color: Tuple[int, int, int, int]
    shape: Shape


def _check_bitmap(bitmap: np.ndarray, name: str):
    if (
        not isinstance(bitmap, np.ndarray)
        or bitmap.dtype != np.uint8
        or bitmap.ndim != 3
        or bitmap.shape[2] != 4
    ):
        description = (
            f"shape={bitmap.shape}, dtype={bitmap.dtype}"
            if isinstance(bitmap, np.ndarray)
            else type(bitmap).__name__
        )
        raise ValueError(f"{name} must be an (H x W x 4) uint8 array, got {description}")


class Model:
    """
    Approximates a target image by adding one shape at a time to a canvas

    The model owns a read-only copy of the target, the current canvas and the
    running difference score between them. Each `step` searches for the best
    next shape on several workers, commits the winner and updates the score
    incrementally
    """

    def __init__(
        self,
        target: np.ndarray,
        initial: Union[Sequence[int], np.ndarray],
        num_workers: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        """
        Creates a model for `target`, starting from a background color or a bitmap

        :param target: (H x W x 4) uint8 image to approximate
        :type target: np.ndarray
        :param initial: Starting canvas: an (r, g, b, a) color or an (H x W x 4) uint8 bitmap
        :type initial: Union[Sequence[int], np.ndarray]
        :param num_workers: Number of search workers per step, defaults to the CPU count
        :type num_workers: Optional[int]
        :param seed: Seed for reproducible runs (for a fixed worker count)
        :type seed: Optional[int]
        :raises ValueError: If the images are malformed, their dimensions differ,
                            or `num_workers` is less than 1
        """
        _check_bitmap(target, "Target")
        self._target = np.array(target, dtype=np.uint8, copy=True)
        self._target.setflags(write=False)
        height, width = self._target.shape[0], self._target.shape[1]

        if isinstance(initial, np.ndarray) and initial.ndim != 1:
            _check_bitmap(initial, "Initial bitmap")
            if initial.shape[:2] != (height, width):
                raise ValueError(
                    f"Initial bitmap is {initial.shape[1]}x{initial.shape[0]}, "
                    f"target is {width}x{height}"
                )
            self._current = np.array(initial, dtype=np.uint8, copy=True)
        else:
            self._current = create_bitmap(width, height, initial)
        # mirrors `_current`; holds the pixels from before a commit
        self._before = self._current.copy()

        if num_workers is None:
            num_workers = os.cpu_count() or 1
        if num_workers < 1:
            raise ValueError(f"Number of workers must be at least 1, got {num_workers}")
        self.num_workers = int(num_workers)
        self._seed_sequence = np.random.SeedSequence(seed)

        self._last_score = difference_full(self._target, self._current)

    def reset(self, background: Sequence[int]):
        """Fills the canvas with `background` and recomputes the score"""
        fill_bitmap(self._current, background)
        self._before[:] = self._current
        self._last_score = difference_full(self._target, self._current)

    def get_width(self) -> int:
        return self._target.shape[1]

    def get_height(self) -> int:
        return self._target.shape[0]

    def get_aspect_ratio(self) -> float:
        """Returns width / height, or 0 if either dimension is 0"""
        width, height = self.get_width(), self.get_height()
        if width == 0 or height == 0:
            return 0.0
        return width / height

    def get_target(self) -> np.ndarray:
        return self._target

    def get_current(self) -> np.ndarray:
        return self._current

    def get_last_score(self) -> float:
        return self._last_score

    def _spawn_generators(self) -> List[np.random.Generator]:
        return [
            np.random.default_rng(child)
            for child in self._seed_sequence.spawn(self.num_workers)
        ]

    def _search(
        self,
        shape_types: Sequence[str],
        alpha: int,
        shape_count: int,
        max_shape_mutations: int,
        passes: int,
        rng: np.random.Generator,
    ) -> State:
        # each worker scores candidates on its own scratch canvas
        buffer = self._current.copy()
        return best_hill_climb_state(
            shape_types,
            alpha,
            shape_count,
            max_shape_mutations,
            passes,
            self._target,
            self._current,
            buffer,
            self._last_score,
            rng,
        )

    def get_hill_climb_states(
        self,
        shape_types: Sequence[str],
        alpha: int,
        shape_count: int,
        max_shape_mutations: int,
        passes: int,
    ) -> List[State]:
        """
        Runs one shape search per worker and collects the results

        Workers only read the canvas; they run on a thread pool unless a single
        worker is configured, in which case the search runs on the calling thread

        :param shape_types: Shape type tags to sample from
        :type shape_types: Sequence[str]
        :param alpha: Opacity of the shapes, in [1, 255]
        :type alpha: int
        :param shape_count: Random shapes tried per pass, >= 1
        :type shape_count: int
        :param max_shape_mutations: Hill-climb iterations per pass, >= 0
        :type max_shape_mutations: int
        :param passes: Restart-and-climb rounds per worker, >= 1
        :type passes: int
        :raises ValueError: If a search parameter is invalid
        :return: One state per worker, in worker order
        :rtype: List[State]
        """
        selected = validate_search_parameters(
            shape_types, alpha, shape_count, max_shape_mutations, passes
        )
        generators = self._spawn_generators()
        args = (selected, alpha, shape_count, max_shape_mutations, passes)

        if self.num_workers == 1:
            return [self._search(*args, generators[0])]

        with ThreadPoolExecutor(max_workers=self.num_workers) as executor:
            futures = [executor.submit(self._search, *args, rng) for rng in generators]
            return [future.result() for future in futures]

    def step(
        self,
        shape_types: Sequence[str],
        alpha: int,
        shape_count: int,
        max_shape_mutations: int,
        passes: int,
    ) -> List[ShapeResult]:
        """
        Adds the best shape found by the workers to the canvas

        The state with the lowest score wins, ties go to the lowest worker index.
        The winner is always committed

        :return: A single-element list with the committed shape
        :rtype: List[ShapeResult]
        """
        states = self.get_hill_climb_states(
            shape_types, alpha, shape_count, max_shape_mutations, passes
        )
        best = states[0]
        for state in states[1:]:
            if state.score < best.score:
                best = state
        return [self.draw_shape(best.shape, alpha=alpha)]

    def draw_shape(
        self,
        shape: Shape,
        alpha: Optional[int] = None,
        color: Optional[Sequence[int]] = None,
    ) -> ShapeResult:
        """
        Draws a shape onto the canvas and updates the score

        The color is either the best fit for `alpha` or the given `color`

        :param shape: Shape created for this model's dimensions
        :type shape: Shape
        :param alpha: Opacity to compute the best-fit color with, in [1, 255]
        :type alpha: Optional[int]
        :param color: Explicit (r, g, b, a) color
        :type color: Optional[Sequence[int]]
        :raises ValueError: If not exactly one of `alpha` and `color` is given,
                            or the shape bounds do not match the model
        :return: The committed shape with its color and the new score
        :rtype: ShapeResult
        """
        if (alpha is None) == (color is None):
            raise ValueError("Exactly one of alpha or color must be given")
        if shape.x_bound != self.get_width() or shape.y_bound != self.get_height():
            raise ValueError(
                f"Shape bounds {shape.x_bound}x{shape.y_bound} do not match "
                f"the model ({self.get_width()}x{self.get_height()})"
            )

        lines = shape.rasterize()
        if color is None:
            color = compute_color(self._target, self._current, lines, alpha)
        else:
            color = to_color(color)

        draw_lines(self._current, color, lines)
        self._last_score = float(
            difference_partial(
                self._target, self._before, self._current, self._last_score, lines
            )
        )
        copy_lines(self._before, self._current, lines)
        return ShapeResult(self._last_score, color, shape)
