"""
Rigid Motion Groups for Particle States

This module provides the Lie groups that particle states live on when they
describe a pose rather than a flat vector:

    SO(2): planar rotations, embedded as unit complex numbers z = e^{iθ}
    SE(2): planar rigid motions (SO(2) rotation + 2-vector translation)
    SO(3): spatial rotations, backed by scipy.spatial.transform.Rotation
    SE(3): spatial rigid motions (SO(3) rotation + 3-vector translation)

Every group exposes the same small interface consumed by the estimators:

    G.exp(ξ)       tangent vector → group element
    g.log()        group element → tangent vector
    g * h          composition (and g * p applies g to a point p)
    g.inverse()    group inverse
    G.DoF          tangent space dimension

Tangent Space Conventions:
    SE(2): ξ = [υx, υy, θ]ᵀ
    SE(3): ξ = [υx, υy, υz, ωx, ωy, ωz]ᵀ

    Translation components come first, rotation components last, so that the
    estimator covariance blocks line up with the tangent ordering.

Exponential and logarithm maps follow the closed forms of
Barfoot, T. (2017), State Estimation for Robotics, §7.1.
"""

import numpy as np
from scipy.spatial.transform import Rotation
from typing import Optional, Sequence, Union

# Below this rotation angle the closed-form Jacobians switch to Taylor series.
_SMALL_ANGLE = 1e-10


def _skew(vector: np.ndarray) -> np.ndarray:
    """Return the 3x3 skew-symmetric matrix [v]× of a 3-vector."""
    x, y, z = vector
    return np.array([
        [0.0, -z, y],
        [z, 0.0, -x],
        [-y, x, 0.0]
    ])


class SO2:
    """
    Planar rotation stored as a unit complex number.

    Mathematical Representation:
        z = cos θ + i sin θ,  |z| = 1

    Composition is complex multiplication, inversion is conjugation, and the
    logarithm recovers θ ∈ (-π, π] through atan2.
    """

    DoF = 1

    def __init__(self, angle: float = 0.0):
        self._unit_complex = complex(np.cos(angle), np.sin(angle))

    @classmethod
    def from_complex(cls, value: complex) -> 'SO2':
        """
        Create a rotation from a (not necessarily unit) complex number.

        Raises:
            ValueError: If the complex number is zero
        """
        magnitude = abs(value)
        if magnitude == 0.0:
            raise ValueError("Cannot build a rotation from a zero complex number")
        rotation = cls.__new__(cls)
        rotation._unit_complex = complex(value) / magnitude
        return rotation

    @classmethod
    def exp(cls, tangent: Union[float, Sequence[float], np.ndarray]) -> 'SO2':
        """Exponential map: θ → e^{iθ}."""
        return cls(float(np.asarray(tangent, dtype=float).reshape(-1)[0]))

    def log(self) -> np.ndarray:
        """Logarithm map: e^{iθ} → [θ]."""
        return np.array([self.angle])

    @property
    def angle(self) -> float:
        """Rotation angle in radians, in (-π, π]."""
        return float(np.arctan2(self._unit_complex.imag, self._unit_complex.real))

    @property
    def unit_complex(self) -> complex:
        """Unit complex embedding of the rotation."""
        return self._unit_complex

    def inverse(self) -> 'SO2':
        return SO2.from_complex(self._unit_complex.conjugate())

    def matrix(self) -> np.ndarray:
        c, s = self._unit_complex.real, self._unit_complex.imag
        return np.array([[c, -s], [s, c]])

    def __mul__(self, other):
        if isinstance(other, SO2):
            return SO2.from_complex(self._unit_complex * other._unit_complex)
        point = np.asarray(other, dtype=float)
        if point.shape != (2,):
            raise ValueError(f"SO2 acts on 2D points, got shape {point.shape}")
        return self.matrix() @ point

    def __repr__(self) -> str:
        return f"SO2(angle={self.angle:.6f})"


class SE2:
    """
    Planar rigid motion T = (R, t) with R ∈ SO(2) and t ∈ ℝ².

    Action on a point:
        T · p = R p + t

    Array layout (used by columnar particle storage):
        [x, y, θ]
    """

    DoF = 3

    def __init__(self, rotation: Union[SO2, float] = 0.0,
                 translation: Optional[Sequence[float]] = None):
        self._so2 = rotation if isinstance(rotation, SO2) else SO2(float(rotation))
        if translation is None:
            self._translation = np.zeros(2)
        else:
            self._translation = np.asarray(translation, dtype=float).reshape(2).copy()

    @classmethod
    def from_array(cls, array: Union[Sequence[float], np.ndarray]) -> 'SE2':
        """
        Create a pose from an [x, y, θ] array.

        Raises:
            ValueError: If the array does not have three elements
        """
        values = np.asarray(array, dtype=float)
        if values.shape != (3,):
            raise ValueError(f"SE2 array must have 3 elements [x, y, theta], got shape {values.shape}")
        return cls(float(values[2]), values[0:2])

    def to_array(self) -> np.ndarray:
        return np.array([self._translation[0], self._translation[1], self._so2.angle])

    @property
    def so2(self) -> SO2:
        return self._so2

    @property
    def translation(self) -> np.ndarray:
        """Translation vector [x, y]."""
        return self._translation.copy()

    @property
    def angle(self) -> float:
        return self._so2.angle

    @classmethod
    def exp(cls, tangent: Union[Sequence[float], np.ndarray]) -> 'SE2':
        """
        Exponential map ξ = [υx, υy, θ] → T.

            t = V(θ) υ,  V(θ) = 1/θ [[sin θ, -(1 - cos θ)], [1 - cos θ, sin θ]]
        """
        xi = np.asarray(tangent, dtype=float).reshape(3)
        theta = xi[2]
        if abs(theta) < _SMALL_ANGLE:
            sin_by_theta = 1.0 - theta ** 2 / 6.0
            one_minus_cos_by_theta = 0.5 * theta
        else:
            sin_by_theta = np.sin(theta) / theta
            one_minus_cos_by_theta = (1.0 - np.cos(theta)) / theta
        V = np.array([
            [sin_by_theta, -one_minus_cos_by_theta],
            [one_minus_cos_by_theta, sin_by_theta]
        ])
        return cls(SO2(theta), V @ xi[0:2])

    def log(self) -> np.ndarray:
        """
        Logarithm map T → ξ = [υx, υy, θ].

            υ = V(θ)⁻¹ t,  V⁻¹ = [[a, θ/2], [-θ/2, a]],  a = (θ/2) sin θ / (1 - cos θ)
        """
        theta = self._so2.angle
        half_theta = 0.5 * theta
        z = self._so2.unit_complex
        if abs(z.real - 1.0) < _SMALL_ANGLE:
            half_theta_by_tan = 1.0 - theta ** 2 / 12.0
        else:
            half_theta_by_tan = -(half_theta * z.imag) / (z.real - 1.0)
        V_inv = np.array([
            [half_theta_by_tan, half_theta],
            [-half_theta, half_theta_by_tan]
        ])
        upsilon = V_inv @ self._translation
        return np.array([upsilon[0], upsilon[1], theta])

    def inverse(self) -> 'SE2':
        rotation_inv = self._so2.inverse()
        return SE2(rotation_inv, -(rotation_inv * self._translation))

    def matrix(self) -> np.ndarray:
        T = np.eye(3)
        T[0:2, 0:2] = self._so2.matrix()
        T[0:2, 2] = self._translation
        return T

    def __mul__(self, other):
        if isinstance(other, SE2):
            return SE2(self._so2 * other._so2, self._so2 * other._translation + self._translation)
        return self._so2 * np.asarray(other, dtype=float) + self._translation

    def __repr__(self) -> str:
        return (f"SE2(x={self._translation[0]:.6f}, y={self._translation[1]:.6f}, "
                f"theta={self.angle:.6f})")


class SO3:
    """
    Spatial rotation backed by scipy's Rotation.

    Quaternions use scipy's scalar-last convention [qx, qy, qz, qw]. The
    exponential and logarithm maps are scipy's rotation vector conversions.
    """

    DoF = 3

    def __init__(self, rotation: Optional[Rotation] = None):
        self._rotation = Rotation.identity() if rotation is None else rotation

    @classmethod
    def from_quaternion(cls, quaternion: Union[Sequence[float], np.ndarray]) -> 'SO3':
        """Create a rotation from a scalar-last quaternion; it is normalized by scipy."""
        return cls(Rotation.from_quat(np.asarray(quaternion, dtype=float)))

    @classmethod
    def exp(cls, tangent: Union[Sequence[float], np.ndarray]) -> 'SO3':
        return cls(Rotation.from_rotvec(np.asarray(tangent, dtype=float).reshape(3)))

    @classmethod
    def rot_x(cls, angle: float) -> 'SO3':
        return cls.exp([angle, 0.0, 0.0])

    @classmethod
    def rot_y(cls, angle: float) -> 'SO3':
        return cls.exp([0.0, angle, 0.0])

    @classmethod
    def rot_z(cls, angle: float) -> 'SO3':
        return cls.exp([0.0, 0.0, angle])

    def log(self) -> np.ndarray:
        return self._rotation.as_rotvec()

    @property
    def rotation(self) -> Rotation:
        return self._rotation

    @property
    def quaternion(self) -> np.ndarray:
        """Unit quaternion [qx, qy, qz, qw]."""
        return self._rotation.as_quat()

    def inverse(self) -> 'SO3':
        return SO3(self._rotation.inv())

    def matrix(self) -> np.ndarray:
        return self._rotation.as_matrix()

    def __mul__(self, other):
        if isinstance(other, SO3):
            return SO3(self._rotation * other._rotation)
        point = np.asarray(other, dtype=float)
        if point.shape != (3,):
            raise ValueError(f"SO3 acts on 3D points, got shape {point.shape}")
        return self._rotation.apply(point)

    def __repr__(self) -> str:
        return f"SO3(rotvec={np.array2string(self.log(), precision=6)})"


class SE3:
    """
    Spatial rigid motion T = (R, t) with R ∈ SO(3) and t ∈ ℝ³.

    Array layout (used by columnar particle storage):
        [tx, ty, tz, qx, qy, qz, qw]
    """

    DoF = 6

    def __init__(self, rotation: Union[SO3, Rotation, None] = None,
                 translation: Optional[Sequence[float]] = None):
        if isinstance(rotation, SO3):
            self._so3 = rotation
        else:
            self._so3 = SO3(rotation)
        if translation is None:
            self._translation = np.zeros(3)
        else:
            self._translation = np.asarray(translation, dtype=float).reshape(3).copy()

    @classmethod
    def from_array(cls, array: Union[Sequence[float], np.ndarray]) -> 'SE3':
        """
        Create a pose from a [tx, ty, tz, qx, qy, qz, qw] array.

        Raises:
            ValueError: If the array does not have seven elements
        """
        values = np.asarray(array, dtype=float)
        if values.shape != (7,):
            raise ValueError(f"SE3 array must have 7 elements, got shape {values.shape}")
        return cls(SO3.from_quaternion(values[3:7]), values[0:3])

    def to_array(self) -> np.ndarray:
        return np.concatenate([self._translation, self._so3.quaternion])

    @classmethod
    def rot_x(cls, angle: float) -> 'SE3':
        return cls(SO3.rot_x(angle))

    @classmethod
    def rot_y(cls, angle: float) -> 'SE3':
        return cls(SO3.rot_y(angle))

    @classmethod
    def rot_z(cls, angle: float) -> 'SE3':
        return cls(SO3.rot_z(angle))

    @property
    def so3(self) -> SO3:
        return self._so3

    @property
    def translation(self) -> np.ndarray:
        return self._translation.copy()

    @staticmethod
    def _left_jacobian(omega: np.ndarray) -> np.ndarray:
        """
        SO(3) left Jacobian V(ω) = I + (1 - cos θ)/θ² W + (θ - sin θ)/θ³ W²,
        with W = [ω]× and θ = |ω|.
        """
        theta = np.linalg.norm(omega)
        W = _skew(omega)
        if theta < _SMALL_ANGLE:
            return np.eye(3) + 0.5 * W + W @ W / 6.0
        return (np.eye(3)
                + (1.0 - np.cos(theta)) / theta ** 2 * W
                + (theta - np.sin(theta)) / theta ** 3 * W @ W)

    @staticmethod
    def _left_jacobian_inverse(omega: np.ndarray) -> np.ndarray:
        """V(ω)⁻¹ = I - W/2 + (1/θ²)(1 - θ sin θ / (2(1 - cos θ))) W²."""
        theta = np.linalg.norm(omega)
        W = _skew(omega)
        if theta < _SMALL_ANGLE:
            return np.eye(3) - 0.5 * W + W @ W / 12.0
        coefficient = (1.0 - theta * np.sin(theta) / (2.0 * (1.0 - np.cos(theta)))) / theta ** 2
        return np.eye(3) - 0.5 * W + coefficient * W @ W

    @classmethod
    def exp(cls, tangent: Union[Sequence[float], np.ndarray]) -> 'SE3':
        """Exponential map ξ = [υ, ω] → T with t = V(ω) υ."""
        xi = np.asarray(tangent, dtype=float).reshape(6)
        omega = xi[3:6]
        return cls(SO3.exp(omega), cls._left_jacobian(omega) @ xi[0:3])

    def log(self) -> np.ndarray:
        """Logarithm map T → ξ = [V(ω)⁻¹ t, ω]."""
        omega = self._so3.log()
        upsilon = self._left_jacobian_inverse(omega) @ self._translation
        return np.concatenate([upsilon, omega])

    def inverse(self) -> 'SE3':
        rotation_inv = self._so3.inverse()
        return SE3(rotation_inv, -(rotation_inv * self._translation))

    def matrix(self) -> np.ndarray:
        T = np.eye(4)
        T[0:3, 0:3] = self._so3.matrix()
        T[0:3, 3] = self._translation
        return T

    def __mul__(self, other):
        if isinstance(other, SE3):
            return SE3(self._so3 * other._so3, self._so3 * other._translation + self._translation)
        return self._so3 * np.asarray(other, dtype=float) + self._translation

    def __repr__(self) -> str:
        return (f"SE3(translation={np.array2string(self._translation, precision=6)}, "
                f"rotvec={np.array2string(self._so3.log(), precision=6)})")
