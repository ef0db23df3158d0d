"""Tests for candidate scoring and the hill-climb search."""

import numpy as np
import pytest

from conftest import solid
from geomosaic.core.compositor import compute_color, draw_lines
from geomosaic.core.metrics import difference_full
from geomosaic.core.optimizers import (
    State,
    best_hill_climb_state,
    best_random_state,
    energy,
    hill_climb,
    validate_search_parameters,
)
from geomosaic.core.shapes import Rectangle, random_shape_of


@pytest.fixture
def canvas(noise_target):
    """A flat canvas for the noise target, with its score and a scratch buffer."""
    current = solid(noise_target.shape[1], noise_target.shape[0], (128, 128, 128, 255))
    return current, current.copy(), difference_full(noise_target, current)


class TestEnergy:
    """Test candidate scoring."""

    def test_energy_equals_drawn_score(self, noise_target, canvas, rng):
        """The energy is the full difference after drawing the best-fit color."""
        current, buffer, score = canvas
        untouched = current.copy()
        shape = Rectangle(24, 20, rng, params=[3, 4, 12, 15])
        lines = shape.rasterize()

        value = energy(lines, 128, noise_target, current, buffer, score)

        expected_canvas = current.copy()
        draw_lines(expected_canvas, compute_color(noise_target, current, lines, 128), lines)
        assert value == pytest.approx(difference_full(noise_target, expected_canvas), rel=1e-6)
        assert np.array_equal(current, untouched)

    def test_state_caches_score(self, noise_target, canvas, rng):
        """calculate_energy stores the score on the state."""
        current, buffer, score = canvas
        state = State(Rectangle(24, 20, rng), 200)
        assert state.score == -1
        value = state.calculate_energy(noise_target, current, buffer, score)
        assert state.score == value

    def test_clone_is_independent(self, rng):
        """A cloned state owns its own shape."""
        state = State(Rectangle(24, 20, rng), 200, 0.5)
        clone = state.clone()
        assert clone.score == 0.5 and clone.alpha == 200
        assert clone.shape is not state.shape


class TestSearch:
    """Test random restarts and hill climbing."""

    def test_best_random_state_is_minimum(self, noise_target, canvas):
        """The returned state has the lowest score of the generated candidates."""
        current, buffer, score = canvas
        best = best_random_state(
            ["rectangle"], 128, 20, noise_target, current, buffer, score, np.random.default_rng(5)
        )
        replay_rng = np.random.default_rng(5)
        scores = [
            State(random_shape_of(["rectangle"], 24, 20, replay_rng), 128).calculate_energy(
                noise_target, current, buffer, score
            )
            for _ in range(20)
        ]
        assert best.score == min(scores)

    def test_best_random_state_without_candidates(self, noise_target, canvas, rng):
        """Zero candidates gives no state."""
        current, buffer, score = canvas
        assert best_random_state(["circle"], 128, 0, noise_target, current, buffer, score, rng) is None

    def test_hill_climb_zero_age(self, noise_target, canvas, rng):
        """Without iterations the start state is returned unchanged."""
        current, buffer, score = canvas
        state = State(Rectangle(24, 20, rng), 128)
        state.calculate_energy(noise_target, current, buffer, score)
        assert hill_climb(state, 0, noise_target, current, buffer, score) is state

    def test_hill_climb_never_worsens(self, noise_target, canvas, rng):
        """Only strictly better mutations are accepted."""
        current, buffer, score = canvas
        state = State(Rectangle(24, 20, rng), 128)
        start = state.calculate_energy(noise_target, current, buffer, score)
        start_params = state.shape.params.copy()
        result = hill_climb(state, 100, noise_target, current, buffer, score)
        assert result.score <= start
        assert np.array_equal(state.shape.params, start_params)

    def test_best_hill_climb_state_is_seeded(self, noise_target, canvas):
        """The same seed gives the same search result."""
        current, buffer, score = canvas
        runs = []
        for _ in range(2):
            state = best_hill_climb_state(
                ["rectangle", "ellipse"], 128, 10, 20, 2,
                noise_target, current, current.copy(), score, np.random.default_rng(99),
            )
            runs.append((state.shape.type_tag(), state.shape.params.tolist(), state.score))
        assert runs[0] == runs[1]

    def test_search_improves_on_distant_canvas(self, noise_target, rng):
        """Starting from black, an opaque shape filled with the target mean helps."""
        current = solid(24, 20, (0, 0, 0, 255))
        score = difference_full(noise_target, current)
        state = best_hill_climb_state(
            ["rectangle"], 255, 20, 20, 1, noise_target, current, current.copy(), score, rng
        )
        assert state.score < score


@pytest.fixture
def matching_canvas():
    """A flat target with an identical canvas, so every opaque candidate scores 0."""
    target = solid(24, 20, (90, 120, 150, 255))
    return target, target.copy(), target.copy(), 0.0


class TestTieBreaks:
    """Test that the first of several equal scores is kept."""

    def test_best_random_state_keeps_first(self, matching_canvas):
        """Among equal candidates the first generated one wins."""
        target, current, buffer, score = matching_canvas
        best = best_random_state(
            ["rectangle", "triangle"], 255, 10, target, current, buffer, score,
            np.random.default_rng(21),
        )
        first = random_shape_of(["rectangle", "triangle"], 24, 20, np.random.default_rng(21))
        assert best.score == 0.0
        assert best.shape.type_tag() == first.type_tag()
        assert best.shape.params.tolist() == first.params.tolist()

    def test_hill_climb_rejects_equal_scores(self, matching_canvas, rng):
        """A mutation that only ties the current best is not accepted."""
        target, current, buffer, score = matching_canvas
        state = State(Rectangle(24, 20, rng), 255)
        state.calculate_energy(target, current, buffer, score)
        assert hill_climb(state, 20, target, current, buffer, score) is state

    def test_best_hill_climb_state_keeps_first_pass(self, matching_canvas):
        """When every pass ties, the first pass's shape is returned."""
        target, current, buffer, score = matching_canvas
        state = best_hill_climb_state(
            ["ellipse", "line"], 255, 1, 5, 4, target, current, buffer, score,
            np.random.default_rng(33),
        )
        first = random_shape_of(["ellipse", "line"], 24, 20, np.random.default_rng(33))
        assert state.score == 0.0
        assert state.shape.type_tag() == first.type_tag()
        assert state.shape.params.tolist() == first.params.tolist()


class TestValidation:
    """Test search parameter validation."""

    def test_valid_parameters(self):
        """Valid parameters return the normalized shape list."""
        assert validate_search_parameters("circle", 128, 1, 0, 1) == ["circle"]

    @pytest.mark.parametrize(
        "shape_types, alpha, shape_count, mutations, passes",
        [
            (["circle"], 128, 0, 10, 1),
            (["circle"], 128, 10, 10, 0),
            (["circle"], 128, 10, -1, 1),
            (["circle"], 0, 10, 10, 1),
            (["circle"], 256, 10, 10, 1),
            ([], 128, 10, 10, 1),
            (["octagon"], 128, 10, 10, 1),
        ],
    )
    def test_invalid_parameters_raise(
        self, noise_target, canvas, rng, shape_types, alpha, shape_count, mutations, passes
    ):
        """Configuration errors are raised before any search work."""
        current, buffer, score = canvas
        with pytest.raises(ValueError):
            best_hill_climb_state(
                shape_types, alpha, shape_count, mutations, passes,
                noise_target, current, buffer, score, rng,
            )
