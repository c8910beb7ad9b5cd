"""
Columnar particle storage with row and column views.

A particle filter touches its population in two different ways:

- Column-wise: the sensor update maps every state to a weight, the estimator
  reduces the (state, weight) columns. These passes want contiguous arrays.
- Row-wise: resampling and debugging tools handle one particle record
  (state, weight, tag) at a time.

ParticleContainer keeps one numpy array per field (structure of arrays) and
exposes both access patterns over the same memory:

    view_states()  ──┐
    view_weights() ──┼──► numpy views of the live prefix of each column
    view_tags()    ──┘
    view_all()     ────► sequence of ParticleRef(container, index) proxies

No field is duplicated, so a write through any view is visible through every
other view of the same index.

Storage Layout:
    states:  (capacity,) + state_shape, dtype state_dtype
    weights: (capacity,), float64
    tags:    (capacity,), dtype tag_dtype

Capacity doubles when push_back runs out of room, giving amortized O(1)
appends. A reallocation detaches views created before it, in the same way
iterators are invalidated on a growing vector.

Thread Safety:
    Concurrent reads are safe. Writes to disjoint index ranges are safe.
    Concurrent writes to the same index race; the container does no locking.
"""

import logging
from collections.abc import Sequence as SequenceABC
from typing import Any, Iterable, Iterator, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import OutOfBoundsError, PreconditionViolation

logger = logging.getLogger(__name__)


class Particle(NamedTuple):
    """Snapshot of a single particle record."""
    state: Any
    weight: float
    tag: Any = 0


class ParticleRef:
    """
    Composite reference to one particle record.

    Reads and writes of ``state``, ``weight`` and ``tag`` go straight to the
    container columns; nothing is cached in the reference itself.
    """

    __slots__ = ("_container", "_index")

    def __init__(self, container: 'ParticleContainer', index: int):
        self._container = container
        self._index = index

    @property
    def index(self) -> int:
        return self._index

    @property
    def state(self):
        # Vector states come back as views so in-place edits reach the column.
        return self._container._states[self._index]

    @state.setter
    def state(self, value) -> None:
        self._container._states[self._index] = value

    @property
    def weight(self) -> float:
        return float(self._container._weights[self._index])

    @weight.setter
    def weight(self, value: float) -> None:
        self._container._weights[self._index] = value

    @property
    def tag(self):
        value = self._container._tags[self._index]
        return value.item() if isinstance(value, np.generic) else value

    @tag.setter
    def tag(self, value) -> None:
        self._container._tags[self._index] = value

    def assign(self, particle: Union[Particle, Tuple]) -> None:
        """Overwrite the whole record from a (state, weight[, tag]) tuple."""
        state, weight, *rest = particle
        self.state = state
        self.weight = weight
        if rest:
            self.tag = rest[0]

    def snapshot(self) -> Particle:
        """Copy the record out of the container."""
        state = self.state
        if isinstance(state, np.ndarray):
            state = state.copy()
        return Particle(state, self.weight, self.tag)

    def __iter__(self) -> Iterator:
        return iter(self.snapshot())

    def __eq__(self, other) -> bool:
        if isinstance(other, ParticleRef):
            other = other.snapshot()
        if not isinstance(other, tuple) or len(other) != 3:
            return NotImplemented
        state, weight, tag = other
        return (bool(np.all(np.asarray(self.state) == np.asarray(state)))
                and self.weight == weight and self.tag == tag)

    def __repr__(self) -> str:
        return f"ParticleRef(index={self._index}, state={self.state!r}, weight={self.weight!r}, tag={self.tag!r})"


class ParticleRowView(SequenceABC):
    """
    Sequence of ParticleRef objects over a container.

    The view has no storage of its own: its length tracks the container size
    and each item is synthesized from an index on access.
    """

    def __init__(self, container: 'ParticleContainer'):
        self._container = container

    def __len__(self) -> int:
        return self._container.size()

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [ParticleRef(self._container, i) for i in range(*index.indices(len(self)))]
        return ParticleRef(self._container, self._container._check_index(index))

    def __setitem__(self, index: int, particle: Union[Particle, Tuple]) -> None:
        self[index].assign(particle)

    def __iter__(self) -> Iterator[ParticleRef]:
        for i in range(len(self)):
            yield ParticleRef(self._container, i)


class ParticleContainer:
    """
    Structure-of-arrays container of (state, weight, tag) particles.

    Attributes:
        state_shape: Shape of a single state (e.g. (3,) for SE2 [x, y, θ] rows,
                     () for scalar or object states)
        state_dtype: numpy dtype of the state column
        tag_dtype: numpy dtype of the auxiliary tag column

    Examples:
        >>> particles = ParticleContainer(state_shape=(3,))
        >>> particles.push_back([0.0, 0.0, 0.0], 1.0, tag=7)
        >>> particles.view_weights()[0] = 0.5
        >>> particles.view_all()[0].weight
        0.5
    """

    def __init__(self, state_shape: Tuple[int, ...] = (3,), state_dtype=float,
                 tag_dtype=np.int64, capacity: int = 0):
        if capacity < 0:
            raise ValueError(f"Capacity must be non-negative, got {capacity}")

        self.state_shape = tuple(state_shape)
        self.state_dtype = np.dtype(state_dtype)
        self.tag_dtype = np.dtype(tag_dtype)

        self._size = 0
        self._states = self._allocate_states(capacity)
        self._weights = np.zeros(capacity, dtype=float)
        self._tags = np.zeros(capacity, dtype=self.tag_dtype)

    @classmethod
    def from_arrays(cls, states: Sequence, weights: Sequence[float],
                    tags: Optional[Sequence] = None, **kwargs) -> 'ParticleContainer':
        """
        Build a container by copying parallel state/weight/tag arrays.

        The state shape is inferred from the states argument unless given.
        """
        states_array = np.asarray(states, dtype=kwargs.pop('state_dtype', None))
        kwargs.setdefault('state_shape', states_array.shape[1:])
        container = cls(state_dtype=states_array.dtype, capacity=len(states_array), **kwargs)
        container.assign(states_array, weights, tags)
        return container

    def _allocate_states(self, capacity: int) -> np.ndarray:
        if self.state_dtype == object:
            return np.full((capacity,) + self.state_shape, None, dtype=object)
        return np.zeros((capacity,) + self.state_shape, dtype=self.state_dtype)

    def _reallocate(self, new_capacity: int) -> None:
        states = self._allocate_states(new_capacity)
        weights = np.zeros(new_capacity, dtype=float)
        tags = np.zeros(new_capacity, dtype=self.tag_dtype)

        states[:self._size] = self._states[:self._size]
        weights[:self._size] = self._weights[:self._size]
        tags[:self._size] = self._tags[:self._size]

        self._states, self._weights, self._tags = states, weights, tags
        logger.debug(f"Particle storage reallocated to capacity {new_capacity}")

    def _check_index(self, index: int) -> int:
        """Normalize a Python-style index, raising OutOfBoundsError when invalid."""
        if isinstance(index, (bool, np.bool_)) or not isinstance(index, (int, np.integer)):
            raise TypeError(f"Particle indices must be integers, got {type(index).__name__}")
        if not -self._size <= index < self._size:
            raise OutOfBoundsError(int(index), self._size)
        return int(index) % self._size

    @property
    def capacity(self) -> int:
        return len(self._weights)

    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self._size

    def reserve(self, capacity: int) -> None:
        """Grow storage to hold at least ``capacity`` particles without resizing."""
        if capacity > self.capacity:
            self._reallocate(capacity)

    def resize(self, count: int) -> None:
        """
        Change the particle count.

        New slots are default-initialized (zero states, or None for object
        states; zero weight; zero tag). Shrinking drops trailing particles.
        """
        if count < 0:
            raise ValueError(f"Particle count must be non-negative, got {count}")
        if count > self.capacity:
            self._reallocate(count)
        if count > self._size:
            self._states[self._size:count] = None if self.state_dtype == object else 0
            self._weights[self._size:count] = 0.0
            self._tags[self._size:count] = 0
        self._size = count

    def clear(self) -> None:
        """Remove all particles, keeping the allocated capacity."""
        self._size = 0

    def push_back(self, state, weight: float, tag=0) -> None:
        """Append one particle, doubling capacity when full."""
        if self._size == self.capacity:
            self._reallocate(max(1, 2 * self.capacity))
        self._states[self._size] = state
        self._weights[self._size] = weight
        self._tags[self._size] = tag
        self._size += 1

    def extend(self, states: Sequence, weights: Sequence[float],
               tags: Optional[Sequence] = None) -> None:
        """
        Append many particles from parallel arrays.

        Raises:
            ValueError: If the arrays have different lengths
        """
        count = len(states)
        if len(weights) != count or (tags is not None and len(tags) != count):
            raise ValueError("States, weights and tags must have the same length")
        start = self._size
        if start + count > self.capacity:
            self._reallocate(max(start + count, 2 * self.capacity))
        self.resize(start + count)
        if count == 0:
            return
        if self.state_dtype == object:
            for offset, state in enumerate(states):
                self._states[start + offset] = state
        else:
            self._states[start:start + count] = states
        self._weights[start:start + count] = weights
        if tags is not None:
            self._tags[start:start + count] = tags

    def assign(self, states: Sequence, weights: Sequence[float],
               tags: Optional[Sequence] = None) -> None:
        """Replace the whole population, e.g. with the output of resampling."""
        self.clear()
        self.extend(states, weights, tags)

    def view_states(self) -> np.ndarray:
        """Mutable view of the state column."""
        return self._states[:self._size]

    def view_weights(self) -> np.ndarray:
        """Mutable view of the weight column."""
        return self._weights[:self._size]

    def view_tags(self) -> np.ndarray:
        """Mutable view of the tag column."""
        return self._tags[:self._size]

    def view_all(self) -> ParticleRowView:
        """Sequence of composite particle references."""
        return ParticleRowView(self)

    def __getitem__(self, index: int) -> ParticleRef:
        return ParticleRef(self, self._check_index(index))

    def __setitem__(self, index: int, particle: Union[Particle, Tuple]) -> None:
        self[index].assign(particle)

    def __iter__(self) -> Iterator[ParticleRef]:
        return iter(self.view_all())

    def particles(self) -> Iterable[Particle]:
        """Iterate over Particle snapshots."""
        for ref in self.view_all():
            yield ref.snapshot()

    def total_weight(self) -> float:
        return float(np.sum(self.view_weights()))

    def normalize_weights(self) -> None:
        """
        Scale weights in place so they sum to one.

        Raises:
            PreconditionViolation: If the weights sum to zero
        """
        total = self.total_weight()
        if total == 0.0:
            raise PreconditionViolation("Cannot normalize particle weights that sum to zero")
        self.view_weights()[:] /= total

    def __repr__(self) -> str:
        return (f"ParticleContainer(size={self._size}, capacity={self.capacity}, "
                f"state_shape={self.state_shape}, state_dtype={self.state_dtype})")
