import pytest
import numpy as np
import sys
import os

# Add the src directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from scipy.spatial.transform import Rotation

from particle_localization.containers import ParticleContainer
from particle_localization.errors import PreconditionViolation
from particle_localization.estimation import (
    average_unit_quaternion,
    estimate_euclidean,
    estimate_lie_group,
    estimate_scalar,
    estimate_se2,
    estimate_se3,
    iterative_mean,
    markley_average_so3,
    average_se3,
    normalize_weights,
    uniform_weights,
    weighted_covariance,
    weighted_mean
)
from particle_localization.geometry import SE2, SE3, SO3

TOLERANCE = 1e-3

TRANSLATIONS = np.array([
    [0, 0], [2, 2], [0, 0], [2, 2], [0, 0],
    [2, 0], [0, 2], [2, 2], [0, 2], [2, 0]
], dtype=float)

RANDOM_WALK = [
    SE2(np.pi * 0.1, [0.0, -2.0]),
    SE2(np.pi * 0.2, [1.0, -1.0]),
    SE2(np.pi * 0.3, [2.0, 1.0]),
    SE2(np.pi * 0.2, [3.0, 2.0]),
    SE2(np.pi * 0.2, [2.0, 1.0]),
    SE2(np.pi * 0.2, [1.0, -1.0]),
    SE2(np.pi * 0.3, [2.0, -2.0]),
    SE2(np.pi * 0.4, [3.0, -1.0]),
    SE2(np.pi * 0.5, [2.0, 1.0]),
    SE2(np.pi * 0.4, [1.0, 2.0]),
]


def assert_pose_near(pose: SE2, angle: float, translation, tolerance: float = TOLERANCE):
    np.testing.assert_allclose(pose.translation, translation, atol=tolerance)
    assert abs(np.angle(np.exp(1j * (pose.angle - angle)))) < tolerance


class TestWeights:
    """Test weight sources and normalization"""

    def test_uniform_weights(self):
        """Test the uniform weight source yields ones"""
        np.testing.assert_array_equal(uniform_weights(4), [1.0, 1.0, 1.0, 1.0])

    def test_normalize_weights(self):
        """Test weights are scaled to sum to one"""
        np.testing.assert_allclose(normalize_weights([1.0, 3.0]), [0.25, 0.75])

    def test_normalize_zero_total(self):
        """Test zero total weight is rejected"""
        with pytest.raises(PreconditionViolation):
            normalize_weights([1.0, -1.0])


class TestEuclideanEstimation:
    """Test weighted mean and covariance of flat vectors"""

    def test_uniform_covariance(self):
        """Test uniform weights reproduce the N-1 sample covariance"""
        covariance = weighted_covariance(TRANSLATIONS, mean=[1.0, 1.0])
        np.testing.assert_allclose(covariance, [[1.1111, 0.2222], [0.2222, 1.1111]], atol=TOLERANCE)
        np.testing.assert_allclose(covariance, np.cov(TRANSLATIONS.T), atol=1e-12)

    def test_non_uniform_covariance(self):
        """Test the effective sample size correction with non-uniform weights"""
        weights = [0.0, 1.0, 2.0, 1.0, 0.0, 1.0, 2.0, 1.0, 0.0, 1.0]
        mean = weighted_mean(TRANSLATIONS, weights)
        np.testing.assert_allclose(mean, [1.1111, 1.1111], atol=TOLERANCE)

        covariance = weighted_covariance(TRANSLATIONS, weights, mean)
        np.testing.assert_allclose(covariance, [[1.1765, 0.1176], [0.1176, 1.1765]], atol=TOLERANCE)

    def test_uniform_matches_explicit_ones(self):
        """Test weights=None agrees with explicit unit weights"""
        rng = np.random.default_rng(7)
        samples = rng.normal(size=(25, 3))
        implicit = estimate_euclidean(samples)
        explicit = estimate_euclidean(samples, np.ones(25))
        np.testing.assert_allclose(implicit[0], explicit[0])
        np.testing.assert_allclose(implicit[1], explicit[1])
        np.testing.assert_allclose(implicit[1], np.cov(samples.T))

    def test_covariance_is_symmetric_with_non_negative_diagonal(self):
        """Test covariance invariants on random weighted data"""
        rng = np.random.default_rng(11)
        samples = rng.normal(size=(40, 4))
        weights = rng.uniform(0.0, 2.0, size=40)
        _, covariance = estimate_euclidean(samples, weights)
        np.testing.assert_array_equal(covariance, covariance.T)
        assert np.all(np.diag(covariance) >= 0.0)

    def test_weight_scaling_invariance(self):
        """Test multiplying all weights by a constant changes nothing"""
        weights = np.arange(1.0, 11.0)
        mean_a, cov_a = estimate_euclidean(TRANSLATIONS, weights)
        mean_b, cov_b = estimate_euclidean(TRANSLATIONS, weights * 1e-6)
        np.testing.assert_allclose(mean_a, mean_b)
        np.testing.assert_allclose(cov_a, cov_b)


class TestScalarEstimation:
    """Test mean and variance of scalar samples"""

    STATES = [0.0, 1.0, 1.0, 2.0, 2.0, 3.0, 4.0, 4.0, 5.0, 5.0, 6.0, 7.0, 7.0, 8.0, 9.0]

    def test_uniform_weights(self):
        """Test uniform weights"""
        mean, variance = estimate_scalar(self.STATES, uniform_weights(len(self.STATES)))
        assert mean == pytest.approx(4.266, abs=TOLERANCE)
        assert np.sqrt(variance) == pytest.approx(2.763, abs=TOLERANCE)

    def test_non_uniform_weights(self):
        """Test non-uniform weights"""
        weights = [0.1, 0.15, 0.15, 0.3, 0.3, 0.4, 0.8, 0.8, 0.4, 0.4, 0.35, 0.3, 0.3, 0.15, 0.1]
        mean, variance = estimate_scalar(self.STATES, weights)
        assert mean == pytest.approx(4.300, abs=TOLERANCE)
        assert np.sqrt(variance) == pytest.approx(2.055, abs=TOLERANCE)

    def test_unweighted_matches_classical(self):
        """Test the unweighted estimate equals numpy's sample statistics"""
        mean, variance = estimate_scalar(self.STATES)
        assert mean == pytest.approx(np.mean(self.STATES))
        assert variance == pytest.approx(np.var(self.STATES, ddof=1))


class TestSE2Estimation:
    """Test pose estimation on SE(2)"""

    def test_pure_translation(self):
        """Test poses that differ only in translation"""
        states = [SE2(0.0, [1.0, 2.0]), SE2(0.0, [0.0, 0.0])]
        pose, covariance = estimate_se2(states, [1.0, 1.0])

        assert_pose_near(pose, 0.0, [0.5, 1.0])
        np.testing.assert_allclose(covariance[:, 0], [0.5, 1.0, 0.0], atol=TOLERANCE)
        np.testing.assert_allclose(covariance[:, 1], [1.0, 2.0, 0.0], atol=TOLERANCE)
        np.testing.assert_allclose(covariance[:, 2], [0.0, 0.0, 0.0], atol=TOLERANCE)

    def test_pure_rotation(self):
        """Test poses that differ only in rotation"""
        states = [SE2(-np.pi / 2, [0.0, 0.0]), SE2(0.0, [0.0, 0.0])]
        pose, covariance = estimate_se2(states, [1.0, 1.0])

        assert_pose_near(pose, -np.pi / 4, [0.0, 0.0])
        expected = np.zeros((3, 3))
        expected[2, 2] = -2.0 * np.log(np.cos(np.pi / 4))
        np.testing.assert_allclose(covariance, expected, atol=TOLERANCE)
        assert covariance[2, 2] == pytest.approx(0.693, abs=TOLERANCE)

    def test_joint_translation_and_rotation(self):
        """Test poses that differ in translation and rotation"""
        states = [
            SE2(np.pi / 6, [0.0, -3.0]),
            SE2(np.pi / 2, [1.0, -2.0]),
            SE2(np.pi / 3, [2.0, -1.0]),
            SE2(0.0, [3.0, 0.0]),
        ]
        pose, covariance = estimate_se2(states, uniform_weights(4))

        assert_pose_near(pose, np.pi / 4, [1.5, -1.5])
        np.testing.assert_allclose(covariance[:, 0], [1.666, 1.666, 0.0], atol=TOLERANCE)
        np.testing.assert_allclose(covariance[:, 1], [1.666, 1.666, 0.0], atol=TOLERANCE)
        np.testing.assert_allclose(covariance[:, 2], [0.0, 0.0, 0.357], atol=TOLERANCE)

    def test_cancelling_orientations(self):
        """Test antipodal rotations give an explicit infinite variance"""
        states = [SE2(np.pi / 2, [0.0, 0.0]), SE2(-np.pi / 2, [0.0, 0.0])]
        pose, covariance = estimate_se2(states, [1.0, 1.0])

        assert_pose_near(pose, 0.0, [0.0, 0.0])
        np.testing.assert_allclose(covariance[0:2, :], 0.0, atol=TOLERANCE)
        np.testing.assert_allclose(covariance[:, 0:2], 0.0, atol=TOLERANCE)
        assert covariance[2, 2] == float('inf')
        assert not np.isnan(covariance).any()

    def test_random_walk_uniform_weights(self):
        """Test a spread of poses with uniform weights"""
        pose, covariance = estimate_se2(RANDOM_WALK)

        assert_pose_near(pose, 0.8762, [1.700, 0.0])
        np.testing.assert_allclose(covariance[:, 0], [0.9000, 0.5556, 0.0], atol=TOLERANCE)
        np.testing.assert_allclose(covariance[:, 1], [0.5556, 2.4444, 0.0], atol=TOLERANCE)
        np.testing.assert_allclose(covariance[:, 2], [0.0, 0.0, 0.1355], atol=TOLERANCE)

    def test_weights_single_out_samples(self):
        """Test zero weights remove samples from the estimate"""
        states = [
            SE2(np.pi / 6, [0.0, -3.0]),
            SE2(np.pi / 2, [1.0, -2.0]),
            SE2(np.pi / 3, [2.0, -1.0]),
            SE2(np.pi / 2, [1.0, -2.0]),
        ]
        pose, covariance = estimate_se2(states, [0.0, 1.0, 0.0, 1.0])

        assert_pose_near(pose, np.pi / 2, [1.0, -2.0])
        np.testing.assert_allclose(covariance, np.zeros((3, 3)), atol=TOLERANCE)

    def test_random_walk_non_uniform_weights(self):
        """Test a spread of poses with non-uniform weights"""
        weights = [0.1, 0.4, 0.7, 0.1, 0.9, 0.2, 0.2, 0.4, 0.1, 0.4]
        pose, covariance = estimate_se2(RANDOM_WALK, weights)

        assert_pose_near(pose, 0.8687, [1.800, 0.3143])
        np.testing.assert_allclose(covariance[:, 0], [0.5946, 0.0743, 0.0], atol=TOLERANCE)
        np.testing.assert_allclose(covariance[:, 1], [0.0743, 1.8764, 0.0], atol=TOLERANCE)
        np.testing.assert_allclose(covariance[:, 2], [0.0, 0.0, 0.0855], atol=TOLERANCE)

    def test_wrap_around_mean(self):
        """Test rotations straddling ±π average to π, not 0"""
        states = [SE2(np.pi - 0.1, [0.0, 0.0]), SE2(-np.pi + 0.1, [0.0, 0.0])]
        pose, covariance = estimate_se2(states)
        assert abs(abs(pose.angle) - np.pi) < 1e-9
        assert covariance[2, 2] == pytest.approx(-2.0 * np.log(np.cos(0.1)))

    def test_container_columns(self):
        """Test estimation straight from particle container views"""
        particles = ParticleContainer()
        for state in RANDOM_WALK:
            particles.push_back(state.to_array(), 1.0)

        pose, covariance = estimate_se2(particles.view_states(), particles.view_weights())
        expected_pose, expected_covariance = estimate_se2(RANDOM_WALK)

        np.testing.assert_allclose(pose.to_array(), expected_pose.to_array())
        np.testing.assert_allclose(covariance, expected_covariance)

    def test_covariance_is_symmetric(self):
        """Test SE2 covariance symmetry and non-negative diagonal"""
        rng = np.random.default_rng(3)
        rows = np.column_stack([rng.normal(size=(30, 2)), rng.uniform(-np.pi, np.pi, size=30)])
        _, covariance = estimate_se2(rows, rng.uniform(0.1, 1.0, size=30))
        np.testing.assert_array_equal(covariance, covariance.T)
        assert np.all(np.diag(covariance) >= 0.0)

    def test_bad_state_shape(self):
        """Test malformed pose rows are rejected"""
        with pytest.raises(ValueError):
            estimate_se2(np.zeros((4, 2)))


class TestSE3Estimation:
    """Test pose estimation on SE(3)"""

    STATES = [SE3.rot_z(0.5), SE3.rot_z(0.0), SE3.rot_z(-0.5)]

    def test_equally_weighted(self):
        """Test symmetric rotations average to the identity"""
        mean, covariance = estimate_se3(self.STATES, [1.0, 1.0, 1.0])
        np.testing.assert_allclose(mean.matrix(), np.eye(4), atol=TOLERANCE)
        assert covariance.shape == (6, 6)

    def test_unweighted(self):
        """Test the unweighted overload"""
        mean, _ = estimate_se3(self.STATES)
        np.testing.assert_allclose(mean.matrix(), np.eye(4), atol=TOLERANCE)

    def test_dominant_weight(self):
        """Test a dominant weight pulls the mean onto its sample"""
        mean, _ = estimate_se3(self.STATES, [0.01, 0.01, 500.0])
        np.testing.assert_allclose(mean.matrix(), SE3.rot_z(-0.5).matrix(), atol=TOLERANCE)

    def test_block_diagonal_covariance(self):
        """Test translation and rotation blocks with no cross terms"""
        states = [
            SE3(SO3.rot_z(0.2), [1.0, 0.0, 0.0]),
            SE3(SO3.rot_z(-0.2), [-1.0, 0.0, 0.0]),
        ]
        mean, covariance = estimate_se3(states)

        np.testing.assert_allclose(mean.translation, [0.0, 0.0, 0.0], atol=1e-12)
        expected = np.zeros((6, 6))
        expected[0, 0] = 2.0
        expected[5, 5] = 0.08
        np.testing.assert_allclose(covariance, expected, atol=1e-9)

    def test_quaternion_sign_ambiguity(self):
        """Test q and -q are averaged as the same rotation"""
        rotation = SO3.rot_x(0.3)
        rows = np.array([
            np.concatenate([[0.0, 0.0, 0.0], rotation.quaternion]),
            np.concatenate([[0.0, 0.0, 0.0], -rotation.quaternion]),
        ])
        mean, covariance = estimate_se3(rows)
        np.testing.assert_allclose(mean.so3.matrix(), rotation.matrix(), atol=1e-9)
        np.testing.assert_allclose(covariance, np.zeros((6, 6)), atol=1e-9)

    def test_bad_arguments(self):
        """Test preconditions fail fast"""
        with pytest.raises(PreconditionViolation):
            estimate_se3([SE3()], [1.0, 1.0, 1.0])
        with pytest.raises(PreconditionViolation):
            estimate_se3([SE3(), SE3()], [1.0, 1.0, 1.0])
        with pytest.raises(PreconditionViolation):
            estimate_se3(np.zeros((0, 7)), [1.0, 1.0, 1.0])


class TestQuaternionAverage:
    """Test the unit quaternion resultant"""

    def test_matches_markley_for_clustered_rotations(self):
        """Test agreement with scipy's eigenvector mean on a tight cluster"""
        rng = np.random.default_rng(5)
        base = Rotation.from_rotvec([0.4, -0.2, 1.0])
        rotations = [SO3(base * Rotation.from_rotvec(rng.normal(scale=0.05, size=3))) for _ in range(5)]
        weights = normalize_weights(np.ones(5))

        quaternion, magnitude = average_unit_quaternion(np.array([r.quaternion for r in rotations]), weights)
        markley = markley_average_so3(rotations, weights)

        difference = (Rotation.from_quat(quaternion).inv() * markley.rotation).magnitude()
        assert difference < TOLERANCE
        assert 0.0 < magnitude <= 1.0

    def test_dominant_weight(self):
        """Test a dominant weight pulls the average onto its quaternion"""
        rotations = Rotation.from_rotvec([[0.3, -1.2, 0.5], [2.0, 0.1, -0.4], [-0.7, 0.9, 1.6]])
        quaternions = rotations.as_quat()
        weights = normalize_weights([1e-3, 1e-3, 1.0 - 2e-3])

        quaternion, _ = average_unit_quaternion(quaternions, weights)
        difference = (Rotation.from_quat(quaternion).inv() * rotations[2]).magnitude()
        assert difference < 0.01

        uniform = markley_average_so3([SO3(r) for r in rotations], normalize_weights(np.ones(3)))
        assert (Rotation.from_quat(quaternion).inv() * uniform.rotation).magnitude() > 0.01


class TestLieGroupEstimation:
    """Test the general Lie group estimator"""

    def test_se2_tangent_covariance(self):
        """Test SE2 through the generic estimator with the Karcher mean"""
        states = [SE2(-np.pi / 2, [0.0, 0.0]), SE2(0.0, [0.0, 0.0])]
        mean, covariance = estimate_lie_group(states, [1.0, 1.0])

        assert_pose_near(mean, -np.pi / 4, [0.0, 0.0], tolerance=1e-9)
        expected = np.zeros((3, 3))
        expected[2, 2] = 2.0 * (np.pi / 4) ** 2
        np.testing.assert_allclose(covariance, expected, atol=1e-9)

    def test_so3_with_external_average(self):
        """Test SO3 with scipy's Markley mean as the group average"""
        states = [SO3.rot_z(0.3), SO3.rot_z(-0.3)]
        mean, covariance = estimate_lie_group(states, average=markley_average_so3)

        np.testing.assert_allclose(mean.matrix(), np.eye(3), atol=1e-9)
        expected = np.zeros((3, 3))
        expected[2, 2] = 0.18
        np.testing.assert_allclose(covariance, expected, atol=1e-9)

    def test_se3_iterative_mean_of_translations(self):
        """Test the Karcher mean reduces to the arithmetic mean for pure translations"""
        rotation = SO3.rot_y(0.7)
        states = [SE3(rotation, [1.0, 2.0, 3.0]), SE3(rotation, [3.0, 2.0, 1.0]), SE3(rotation, [2.0, 5.0, 2.0])]
        weights = normalize_weights([1.0, 1.0, 2.0])

        mean = iterative_mean(states, weights)
        np.testing.assert_allclose(mean.translation, weights @ np.array([s.translation for s in states]), atol=1e-9)
        np.testing.assert_allclose(mean.so3.matrix(), rotation.matrix(), atol=1e-9)

    def test_se3_resultant_average(self):
        """Test the closed-form SE3 average as the group-average primitive"""
        states = [SE3.rot_z(0.5), SE3.rot_z(0.0), SE3.rot_z(-0.5)]
        mean, covariance = estimate_lie_group(states, average=average_se3)
        np.testing.assert_allclose(mean.matrix(), np.eye(4), atol=1e-9)
        assert covariance.shape == (6, 6)
        np.testing.assert_allclose(covariance, covariance.T)
        assert covariance[5, 5] == pytest.approx(0.25)

    def test_se3_recovers_sampled_distribution(self):
        """Test mean and tangent covariance of poses drawn around a known SE3 mean"""
        rng = np.random.default_rng(42)
        true_mean = SE3(SO3.exp([0.1, 0.2, 0.3]), [1.0, 2.0, 3.0])
        tangents = rng.multivariate_normal(np.zeros(6), 0.2 * np.eye(6), size=20000)
        states = [true_mean * SE3.exp(xi) for xi in tangents]

        mean, covariance = estimate_lie_group(states, average=average_se3)

        error = (true_mean.inverse() * mean).log()
        np.testing.assert_allclose(error, np.zeros(6), atol=0.02)
        np.testing.assert_allclose(covariance, 0.2 * np.eye(6), atol=0.02)

    def test_requires_two_weighted_samples(self):
        """Test a single non-zero weight is rejected"""
        with pytest.raises(PreconditionViolation):
            estimate_lie_group([SE2(), SE2(0.1)], [1.0, 0.0])


class TestPreconditions:
    """Test statistical preconditions across estimators"""

    def test_single_sample(self):
        """Test one sample is not enough for a covariance"""
        with pytest.raises(PreconditionViolation):
            estimate_euclidean([[1.0, 2.0]])
        with pytest.raises(PreconditionViolation):
            estimate_se2([SE2()])

    def test_empty_input(self):
        """Test empty input is rejected"""
        with pytest.raises(PreconditionViolation):
            estimate_scalar([])

    def test_mismatched_weights(self):
        """Test the weight count must match the sample count"""
        with pytest.raises(PreconditionViolation):
            estimate_scalar([1.0, 2.0, 3.0], [1.0, 1.0])

    def test_zero_total_weight(self):
        """Test weights summing to zero are rejected"""
        with pytest.raises(PreconditionViolation):
            estimate_se2([SE2(), SE2(0.5)], [1.0, -1.0])

    def test_single_non_zero_weight(self):
        """Test weights concentrated on one sample are rejected"""
        with pytest.raises(PreconditionViolation):
            estimate_euclidean(TRANSLATIONS, [0.0] * 9 + [1.0])

    def test_dominant_weight_with_tiny_second_weight(self):
        """Test a nearly single-sample population still yields a finite covariance"""
        mean, covariance = estimate_se2([SE2(), SE2(0.1, [1.0, 0.0])], [1.0, 1e-12])

        assert np.all(np.isfinite(covariance))
        assert covariance[0, 0] == pytest.approx(0.5, rel=1e-3)
        assert_pose_near(mean, 0.0, [0.0, 0.0], tolerance=1e-9)

    def test_sharply_peaked_population(self):
        """Test weights spanning hundreds of orders of magnitude are accepted"""
        rng = np.random.default_rng(7)
        rows = np.column_stack([
            rng.normal(0.0, 1.0, 200),
            rng.normal(0.0, 1.0, 200),
            rng.uniform(-np.pi, np.pi, 200)
        ])
        weights = np.exp(-rng.uniform(20.0, 600.0, 200))
        weights[0] = 1.0
        assert np.count_nonzero(weights) == 200

        mean, covariance = estimate_se2(rows, weights)
        assert np.all(np.isfinite(covariance[0:2, 0:2]))
        np.testing.assert_allclose(mean.translation, rows[0, 0:2], atol=1e-6)

    def test_precondition_is_value_error(self):
        """Test precondition errors are also ValueErrors"""
        with pytest.raises(ValueError):
            estimate_scalar([1.0])
