import numpy as np
from typing import Optional, Sequence

from geomosaic.core.compositor import compute_color, copy_lines, draw_lines
from geomosaic.core.metrics import difference_partial
from geomosaic.core.shapes import Shape, normalize_shape_types, random_shape_of


def energy(
    lines: np.ndarray,
    alpha: int,
    target: np.ndarray,
    current: np.ndarray,
    buffer: np.ndarray,
    last_score: float,
) -> float:
    """
    Scores how well a shape would improve the canvas, without touching `current`

    The best-fit color for `lines` is blended into `buffer` (after restoring
    those pixels from `current`), and the difference to `target` is updated
    incrementally from `last_score`

    :param lines: Scanlines of the candidate shape
    :type lines: np.ndarray
    :param alpha: Opacity the shape would be drawn with, in [1, 255]
    :type alpha: int
    :param target: Target image
    :type target: np.ndarray
    :param current: Current canvas, read only
    :type current: np.ndarray
    :param buffer: Scratch canvas equal to `current` outside previously drawn lines
    :type buffer: np.ndarray
    :param last_score: Difference between `target` and `current`
    :type last_score: float
    :return: Difference between `target` and the canvas with the shape drawn
    :rtype: float
    """
    color = compute_color(target, current, lines, alpha)
    copy_lines(buffer, current, lines)
    draw_lines(buffer, color, lines)
    return float(difference_partial(target, current, buffer, last_score, lines))


class State:
    """
    A candidate shape together with the alpha it is drawn with and its cached score

    A score of -1 means the energy has not been calculated yet
    """

    def __init__(self, shape: Shape, alpha: int, score: float = -1.0):
        self.shape = shape
        self.alpha = alpha
        self.score = score

    def calculate_energy(
        self,
        target: np.ndarray,
        current: np.ndarray,
        buffer: np.ndarray,
        last_score: float,
    ) -> float:
        """Rasterizes the shape, scores it with `energy` and caches the result"""
        lines = self.shape.rasterize()
        self.score = energy(lines, self.alpha, target, current, buffer, last_score)
        return self.score

    def clone(self) -> "State":
        return State(self.shape.clone(), self.alpha, self.score)

    def __repr__(self):
        return f"State(shape={self.shape.type_tag()}, alpha={self.alpha}, score={self.score:.6f})"


def validate_search_parameters(
    shape_types: Sequence[str],
    alpha: int,
    shape_count: int,
    max_shape_mutations: int,
    passes: int,
) -> list:
    """
    Checks the parameters of a shape search before any work starts

    :raises ValueError: If any parameter is out of range or a shape type is unknown
    :return: The normalized list of shape type tags
    :rtype: list
    """
    selected = normalize_shape_types(shape_types)
    if not 1 <= alpha <= 255:
        raise ValueError(f"Alpha must be in [1, 255], got {alpha}")
    if shape_count < 1:
        raise ValueError(f"Shape count must be at least 1, got {shape_count}")
    if max_shape_mutations < 0:
        raise ValueError(
            f"Max shape mutations must not be negative, got {max_shape_mutations}"
        )
    if passes < 1:
        raise ValueError(f"Passes must be at least 1, got {passes}")
    return selected


def best_random_state(
    shape_types: Sequence[str],
    alpha: int,
    n: int,
    target: np.ndarray,
    current: np.ndarray,
    buffer: np.ndarray,
    last_score: float,
    rng: np.random.Generator,
) -> Optional[State]:
    """
    Generates `n` random states and returns the one with the lowest energy

    Ties go to the state generated first

    :return: The best state, or None when `n` is 0
    :rtype: Optional[State]
    """
    height, width = target.shape[0], target.shape[1]
    best_state = None
    for _ in range(n):
        state = State(random_shape_of(shape_types, width, height, rng), alpha)
        state.calculate_energy(target, current, buffer, last_score)
        if best_state is None or state.score < best_state.score:
            best_state = state
    return best_state


def hill_climb(
    state: State,
    max_age: int,
    target: np.ndarray,
    current: np.ndarray,
    buffer: np.ndarray,
    last_score: float,
) -> State:
    """
    Improves a state by greedy mutation

    Runs exactly `max_age` iterations. Each one mutates a clone of the best
    state so far and keeps it only if its energy is strictly lower

    :param state: Starting state, its energy must already be calculated
    :type state: State
    :param max_age: Number of mutations to try
    :type max_age: int
    :return: The best state found (may be `state` itself)
    :rtype: State
    """
    best_state = state
    for _ in range(max_age):
        candidate = best_state.clone()
        candidate.shape.mutate()
        candidate.calculate_energy(target, current, buffer, last_score)
        if candidate.score < best_state.score:
            best_state = candidate
    return best_state


def best_hill_climb_state(
    shape_types: Sequence[str],
    alpha: int,
    shape_count: int,
    max_shape_mutations: int,
    passes: int,
    target: np.ndarray,
    current: np.ndarray,
    buffer: np.ndarray,
    last_score: float,
    rng: np.random.Generator,
) -> State:
    """
    Runs `passes` rounds of random restarts followed by hill climbing

    Each pass picks the best of `shape_count` random states and climbs it for
    `max_shape_mutations` iterations. The best result across passes is
    returned, with the earliest pass winning ties

    :param shape_types: Shape type tags to sample from
    :type shape_types: Sequence[str]
    :param alpha: Opacity shapes are scored with, in [1, 255]
    :type alpha: int
    :param shape_count: Random states generated per pass, >= 1
    :type shape_count: int
    :param max_shape_mutations: Hill-climb iterations per pass, >= 0
    :type max_shape_mutations: int
    :param passes: Number of restart-and-climb rounds, >= 1
    :type passes: int
    :param target: Target image
    :type target: np.ndarray
    :param current: Current canvas, read only
    :type current: np.ndarray
    :param buffer: Private scratch copy of `current`
    :type buffer: np.ndarray
    :param last_score: Difference between `target` and `current`
    :type last_score: float
    :param rng: Random generator for shape creation and mutation
    :type rng: np.random.Generator
    :raises ValueError: If a search parameter is out of range
    :return: The best state found
    :rtype: State
    """
    selected = validate_search_parameters(
        shape_types, alpha, shape_count, max_shape_mutations, passes
    )
    best_state = None
    for _ in range(passes):
        state = best_random_state(
            selected, alpha, shape_count, target, current, buffer, last_score, rng
        )
        state = hill_climb(
            state, max_shape_mutations, target, current, buffer, last_score
        )
        if best_state is None or state.score < best_state.score:
            best_state = state
    return best_state
